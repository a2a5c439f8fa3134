import django.contrib.gis.db.models.fields
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Offer',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('title', models.CharField(max_length=200, verbose_name='Title')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('package_weight', models.FloatField(blank=True, null=True, verbose_name='Weight (kg)')),
                ('package_length', models.FloatField(blank=True, null=True, verbose_name='Length (cm)')),
                ('package_width', models.FloatField(blank=True, null=True, verbose_name='Width (cm)')),
                ('package_height', models.FloatField(blank=True, null=True, verbose_name='Height (cm)')),
                ('is_fragile', models.BooleanField(default=False, verbose_name='Fragile')),
                ('special_instructions', models.TextField(blank=True, verbose_name='Special instructions')),
                ('pickup_address', models.CharField(max_length=255, verbose_name='Pickup address')),
                ('pickup_location', django.contrib.gis.db.models.fields.PointField(geography=True, srid=4326, verbose_name='Pickup point (GPS)')),
                ('pickup_contact_name', models.CharField(blank=True, max_length=150)),
                ('pickup_contact_phone', models.CharField(blank=True, max_length=20)),
                ('pickup_available_from', models.DateTimeField(blank=True, null=True)),
                ('pickup_available_until', models.DateTimeField(blank=True, null=True)),
                ('pickup_instructions', models.TextField(blank=True)),
                ('delivery_address', models.CharField(max_length=255, verbose_name='Delivery address')),
                ('delivery_location', django.contrib.gis.db.models.fields.PointField(geography=True, srid=4326, verbose_name='Delivery point (GPS)')),
                ('delivery_contact_name', models.CharField(blank=True, max_length=150)),
                ('delivery_contact_phone', models.CharField(blank=True, max_length=20)),
                ('deliver_by', models.DateTimeField(blank=True, null=True, verbose_name='Delivery deadline')),
                ('delivery_instructions', models.TextField(blank=True)),
                ('payment_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Offered amount')),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('payment_method', models.CharField(choices=[('credit_card', 'Credit card'), ('debit_card', 'Debit card'), ('paypal', 'PayPal'), ('stripe', 'Stripe'), ('bank_transfer', 'Bank transfer'), ('wallet', 'Platform wallet'), ('cash', 'Cash')], default='credit_card', max_length=20, verbose_name='Payment method')),
                ('status', models.CharField(choices=[('open', 'Open'), ('accepted', 'Accepted'), ('picked_up', 'Picked up'), ('in_transit', 'In transit'), ('delivered', 'Delivered'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], db_index=True, default='open', max_length=20, verbose_name='Status')),
                ('estimated_distance', models.FloatField(blank=True, null=True)),
                ('estimated_duration', models.FloatField(blank=True, null=True)),
                ('actual_distance', models.FloatField(blank=True, null=True)),
                ('actual_duration', models.FloatField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('accepted_at', models.DateTimeField(blank=True, null=True)),
                ('picked_up_at', models.DateTimeField(blank=True, null=True)),
                ('in_transit_at', models.DateTimeField(blank=True, null=True)),
                ('delivered_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('courier', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='accepted_offers', to=settings.AUTH_USER_MODEL, verbose_name='Assigned courier')),
                ('requester', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='requested_offers', to=settings.AUTH_USER_MODEL, verbose_name='Requester')),
            ],
            options={
                'verbose_name': 'Offer',
                'verbose_name_plural': 'Offers',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='offer_status_created_idx'),
                    models.Index(fields=['courier', 'status'], name='offer_courier_status_idx'),
                    models.Index(fields=['requester', 'status'], name='offer_requester_status_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='OfferStatusHistory',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('previous_status', models.CharField(choices=[('open', 'Open'), ('accepted', 'Accepted'), ('picked_up', 'Picked up'), ('in_transit', 'In transit'), ('delivered', 'Delivered'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], max_length=20)),
                ('status', models.CharField(choices=[('open', 'Open'), ('accepted', 'Accepted'), ('picked_up', 'Picked up'), ('in_transit', 'In transit'), ('delivered', 'Delivered'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], max_length=20)),
                ('actor_role', models.CharField(choices=[('requester', 'Requester'), ('courier', 'Courier')], max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('location', django.contrib.gis.db.models.fields.PointField(blank=True, null=True, srid=4326)),
                ('timestamp', models.DateTimeField()),
                ('actor', models.ForeignKey(null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='offer_status_changes', to=settings.AUTH_USER_MODEL)),
                ('offer', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='status_history', to='logistics.offer')),
            ],
            options={
                'verbose_name': 'Status change',
                'verbose_name_plural': 'Status history',
                'ordering': ['timestamp', 'id'],
            },
        ),
        migrations.CreateModel(
            name='LocationRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('location', django.contrib.gis.db.models.fields.PointField(geography=True, srid=4326, verbose_name='GPS position')),
                ('accuracy', models.FloatField(blank=True, null=True, verbose_name='Accuracy (m)')),
                ('altitude', models.FloatField(blank=True, null=True)),
                ('heading', models.FloatField(blank=True, null=True, verbose_name='Heading (0-360)')),
                ('speed', models.FloatField(blank=True, null=True, verbose_name='Speed (m/s)')),
                ('battery_level', models.FloatField(blank=True, null=True)),
                ('device_info', models.JSONField(blank=True, default=dict)),
                ('tracking_type', models.CharField(choices=[('idle', 'Idle'), ('heading_to_pickup', 'Heading to pickup'), ('at_pickup', 'At pickup'), ('heading_to_delivery', 'Heading to delivery'), ('at_delivery', 'At delivery')], default='idle', max_length=30)),
                ('is_active', models.BooleanField(default=True)),
                ('timestamp', models.DateTimeField(db_index=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('courier', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='location_records', to=settings.AUTH_USER_MODEL)),
                ('offer', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='location_records', to='logistics.offer')),
            ],
            options={
                'verbose_name': 'Location record',
                'verbose_name_plural': 'Location records',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['courier', 'timestamp'], name='location_courier_ts_idx'),
                    models.Index(fields=['offer', 'timestamp'], name='location_offer_ts_idx'),
                    models.Index(fields=['is_active', 'timestamp'], name='location_active_ts_idx'),
                ],
            },
        ),
    ]
