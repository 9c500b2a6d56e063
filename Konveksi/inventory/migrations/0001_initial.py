import django.db.models.deletion
from decimal import Decimal
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Material',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True, verbose_name='Material name')),
                ('code', models.CharField(blank=True, max_length=50, verbose_name='Code')),
                ('unit', models.CharField(default='meter', max_length=20, verbose_name='Unit')),
                ('quantity_on_hand', models.DecimalField(decimal_places=3, default=Decimal('0'), help_text='Cached sum of the ledger; do not edit by hand.', max_digits=14, verbose_name='Quantity on hand')),
                ('safety_stock', models.DecimalField(decimal_places=3, default=Decimal('0'), max_digits=14, verbose_name='Safety stock')),
                ('price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Price per unit')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
            ],
            options={
                'verbose_name': 'Material',
                'verbose_name_plural': 'Materials',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['name'], name='material_name_idx'), models.Index(fields=['code'], name='material_code_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('safety_stock__gte', 0)), name='material_safety_stock_gte_0'), models.CheckConstraint(condition=models.Q(('price__isnull', True), ('price__gte', 0), _connector='OR'), name='material_price_gte_0_or_null')],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=100, unique=True, verbose_name='Product name')),
                ('code', models.CharField(blank=True, max_length=50, verbose_name='Code')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
                ('base_material', models.ForeignKey(blank=True, help_text='Fabric consumed when progress reports fabric usage.', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='products', to='inventory.material', verbose_name='Base material')),
            ],
            options={
                'verbose_name': 'Product',
                'verbose_name_plural': 'Products',
                'ordering': ['name'],
                'indexes': [models.Index(fields=['name'], name='product_name_idx')],
            },
        ),
        migrations.CreateModel(
            name='PurchaseLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('quantity', models.DecimalField(decimal_places=3, max_digits=14, verbose_name='Quantity')),
                ('unit', models.CharField(blank=True, max_length=20, verbose_name='Unit')),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='Unit price')),
                ('supplier', models.CharField(blank=True, max_length=100, verbose_name='Supplier')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('received', 'Received'), ('cancelled', 'Cancelled')], default='pending', max_length=20, verbose_name='Status')),
                ('purchased_at', models.DateField(blank=True, null=True, verbose_name='Purchase date')),
                ('received_at', models.DateTimeField(blank=True, null=True, verbose_name='Received at')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
                ('material', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='purchases', to='inventory.material', verbose_name='Material')),
            ],
            options={
                'verbose_name': 'Purchase',
                'verbose_name_plural': 'Purchases',
                'ordering': ['-created_at'],
                'indexes': [models.Index(fields=['status'], name='purchase_status_idx'), models.Index(fields=['material'], name='purchase_material_idx')],
                'constraints': [models.CheckConstraint(condition=models.Q(('quantity__gt', 0)), name='purchase_quantity_gt_0')],
            },
        ),
    ]
