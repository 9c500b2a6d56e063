import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('orders', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='ProgressBatch',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('individual', 'Per product'), ('aggregated', 'Aggregated')], default='individual', max_length=20, verbose_name='Kind')),
                ('worker_name', models.CharField(blank=True, max_length=100, verbose_name='Worker')),
                ('note', models.TextField(blank=True, verbose_name='Note')),
                ('client_reference', models.CharField(blank=True, max_length=64, null=True, verbose_name='Client reference')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Submitted at')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='progress_batches', to='orders.order', verbose_name='Order')),
                ('order_link', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='progress_batches', to='orders.orderlink', verbose_name='Via link')),
                ('submitted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='progress_batches', to=settings.AUTH_USER_MODEL, verbose_name='Submitted by')),
            ],
            options={
                'verbose_name': 'Progress submission',
                'verbose_name_plural': 'Progress submissions',
                'ordering': ['-created_at', '-id'],
                'constraints': [models.UniqueConstraint(condition=models.Q(('client_reference__isnull', False)), fields=('order', 'client_reference'), name='progress_batch_unique_client_reference')],
            },
        ),
        migrations.CreateModel(
            name='ProgressEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('entry_kind', models.CharField(choices=[('progress', 'Progress'), ('correction', 'Correction')], default='progress', max_length=20, verbose_name='Entry kind')),
                ('pcs_finished', models.IntegerField(default=0, verbose_name='Pieces finished')),
                ('fabric_used', models.DecimalField(blank=True, decimal_places=3, max_digits=12, null=True, verbose_name='Fabric used')),
                ('quality_score', models.PositiveSmallIntegerField(blank=True, null=True, validators=[django.core.validators.MinValueValidator(0), django.core.validators.MaxValueValidator(100)], verbose_name='Quality score')),
                ('quality_notes', models.TextField(blank=True, verbose_name='Quality notes')),
                ('challenges', models.TextField(blank=True, verbose_name='Challenges')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Recorded at')),
                ('batch', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='entries', to='production.progressbatch', verbose_name='Submission')),
                ('corrects', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='correction', to='production.progressentry', verbose_name='Corrects')),
                ('line_item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='progress_entries', to='orders.orderitem', verbose_name='Line item')),
                ('order', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='progress_entries', to='orders.order', verbose_name='Order')),
                ('submitted_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='progress_entries', to=settings.AUTH_USER_MODEL, verbose_name='Submitted by')),
            ],
            options={
                'verbose_name': 'Progress entry',
                'verbose_name_plural': 'Progress entries',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['order', 'created_at'], name='progress_order_created_idx'), models.Index(fields=['line_item'], name='progress_line_item_idx')],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(models.Q(('entry_kind', 'progress'), ('pcs_finished__gte', 0)), models.Q(('entry_kind', 'correction'), ('pcs_finished__lte', 0)), _connector='OR'), name='progress_entry_pcs_sign_matches_kind'),
                    models.CheckConstraint(condition=models.Q(('fabric_used__isnull', True), ('fabric_used__gte', 0), _connector='OR'), name='progress_entry_fabric_gte_0_or_null'),
                    models.CheckConstraint(condition=models.Q(('quality_score__isnull', True), ('quality_score__lte', 100), _connector='OR'), name='progress_entry_quality_lte_100'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ProgressPhoto',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('url', models.URLField(max_length=500, verbose_name='Photo URL')),
                ('thumbnail_url', models.URLField(blank=True, max_length=500, verbose_name='Thumbnail URL')),
                ('caption', models.CharField(blank=True, max_length=255, verbose_name='Caption')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('entry', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='photos', to='production.progressentry', verbose_name='Entry')),
            ],
            options={
                'verbose_name': 'Progress photo',
                'verbose_name_plural': 'Progress photos',
                'ordering': ['id'],
            },
        ),
    ]
