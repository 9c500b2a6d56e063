import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ('inventory', '0001_initial'),
        ('orders', '0001_initial'),
        ('production', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='MaterialLedgerEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity_delta', models.DecimalField(decimal_places=3, max_digits=14, verbose_name='Quantity change')),
                ('source', models.CharField(choices=[('manual', 'Manual'), ('purchase', 'Purchase'), ('production', 'Production'), ('adjustment', 'Adjustment')], max_length=20, verbose_name='Source')),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Unit price')),
                ('total_value', models.DecimalField(blank=True, decimal_places=2, max_digits=16, null=True, verbose_name='Total value')),
                ('reference_number', models.CharField(blank=True, max_length=64, verbose_name='Reference')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='Recorded at')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='ledger_entries', to=settings.AUTH_USER_MODEL, verbose_name='Recorded by')),
                ('line_item', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='orders.orderitem', verbose_name='Line item')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='inventory.material', verbose_name='Material')),
                ('order', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='orders.order', verbose_name='Order')),
                ('progress_entry', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='production.progressentry', verbose_name='Progress entry')),
                ('purchase', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='ledger_entries', to='inventory.purchaselog', verbose_name='Purchase')),
            ],
            options={
                'verbose_name': 'Material ledger entry',
                'verbose_name_plural': 'Material ledger',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['material', 'created_at'], name='ledger_material_created_idx'), models.Index(fields=['reference_number'], name='ledger_reference_idx'), models.Index(fields=['source'], name='ledger_source_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('quantity_delta', 0), _negated=True), name='ledger_delta_nonzero')],
            },
        ),
    ]
