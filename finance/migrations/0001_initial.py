from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('logistics', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Total amount')),
                ('platform_fee', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Platform fee')),
                ('payee_earnings', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Courier earnings')),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('method', models.CharField(choices=[('credit_card', 'Credit card'), ('debit_card', 'Debit card'), ('paypal', 'PayPal'), ('stripe', 'Stripe'), ('bank_transfer', 'Bank transfer'), ('wallet', 'Platform wallet'), ('cash', 'Cash')], default='credit_card', max_length=20, verbose_name='Method')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('completed', 'Completed'), ('failed', 'Failed')], db_index=True, default='pending', max_length=20, verbose_name='Status')),
                ('transaction_reference', models.CharField(blank=True, max_length=100, verbose_name='Gateway reference')),
                ('failure_reason', models.CharField(blank=True, max_length=255)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('retry_count', models.PositiveSmallIntegerField(default=0, verbose_name='Retry attempts')),
                ('last_retry_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('offer', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='payment', to='logistics.offer', verbose_name='Offer')),
                ('payee', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_received', to=settings.AUTH_USER_MODEL, verbose_name='Payee')),
                ('payer', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments_made', to=settings.AUTH_USER_MODEL, verbose_name='Payer')),
            ],
            options={
                'verbose_name': 'Payment',
                'verbose_name_plural': 'Payments',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['payee', 'status'], name='payment_payee_status_idx'),
                    models.Index(fields=['payer', 'created_at'], name='payment_payer_created_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Earnings',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('gross_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('platform_fee', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('net_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('bonus_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('bonus_reason', models.CharField(blank=True, max_length=255)),
                ('final_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('distance', models.FloatField(blank=True, null=True)),
                ('duration', models.FloatField(blank=True, null=True)),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('processing', 'Processing'), ('paid', 'Paid'), ('failed', 'Failed')], db_index=True, default='pending', max_length=20)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('card', 'Card'), ('digital', 'Digital wallet'), ('platform_credit', 'Platform credit')], default='card', max_length=20)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('earned_at', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('courier', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='earnings', to=settings.AUTH_USER_MODEL, verbose_name='Courier')),
                ('offer', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='earnings', to='logistics.offer', verbose_name='Offer')),
                ('payment', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='earnings', to='finance.payment', verbose_name='Payment')),
            ],
            options={
                'verbose_name': 'Earnings',
                'verbose_name_plural': 'Earnings',
                'ordering': ['-earned_at'],
                'indexes': [
                    models.Index(fields=['courier', 'earned_at'], name='earnings_courier_earned_idx'),
                    models.Index(fields=['courier', 'payment_status'], name='earnings_courier_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='EarningsAdjustment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('reason', models.CharField(max_length=255)),
                ('applied_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('applied_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='applied_adjustments', to=settings.AUTH_USER_MODEL)),
                ('earnings', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='adjustments', to='finance.earnings')),
            ],
            options={
                'verbose_name': 'Earnings adjustment',
                'verbose_name_plural': 'Earnings adjustments',
                'ordering': ['applied_at', 'id'],
            },
        ),
    ]
