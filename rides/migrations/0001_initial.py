import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Posting',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('kind', models.CharField(choices=[('RIDE', 'Ride'), ('REQUEST', 'Request')], default='RIDE', max_length=16)),
                ('starting_latitude', models.FloatField(help_text='Starting point latitude')),
                ('starting_longitude', models.FloatField(help_text='Starting point longitude')),
                ('destination_latitude', models.FloatField(help_text='Destination latitude')),
                ('destination_longitude', models.FloatField(help_text='Destination longitude')),
                ('from_city', models.CharField(blank=True, default='', max_length=128)),
                ('from_suburb', models.CharField(blank=True, default='', max_length=128)),
                ('to_city', models.CharField(blank=True, default='', max_length=128)),
                ('to_suburb', models.CharField(blank=True, default='', max_length=128)),
                ('from_city_norm', models.CharField(blank=True, default='', editable=False, max_length=128)),
                ('from_suburb_norm', models.CharField(blank=True, default='', editable=False, max_length=128)),
                ('to_city_norm', models.CharField(blank=True, default='', editable=False, max_length=128)),
                ('to_suburb_norm', models.CharField(blank=True, default='', editable=False, max_length=128)),
                ('route_geometry', models.TextField(blank=True, default='', help_text='Encoded polyline string from the routing provider')),
                ('route_distance_km', models.FloatField(blank=True, help_text='Route distance reported by the routing provider', null=True)),
                ('scheduled_time', models.DateTimeField()),
                ('available_seats', models.PositiveIntegerField(default=1, help_text='Number of seats offered or requested', validators=[django.core.validators.MinValueValidator(1)])),
                ('price', models.FloatField(default=0, help_text='Price for the full origin to destination trip', validators=[django.core.validators.MinValueValidator(0)])),
                ('status', models.CharField(choices=[('UPCOMING', 'Upcoming'), ('IN_PROGRESS', 'In progress'), ('COMPLETED', 'Completed'), ('CANCELLED', 'Cancelled')], default='UPCOMING', max_length=16)),
                ('date_added', models.DateTimeField(auto_now_add=True)),
                ('date_last_updated', models.DateTimeField(auto_now=True)),
                ('owner', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='postings', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'Posting',
                'verbose_name_plural': 'Postings',
                'ordering': ['scheduled_time'],
                'indexes': [models.Index(fields=['kind', 'status', 'scheduled_time'], name='rides_posting_match_idx')],
            },
        ),
        migrations.CreateModel(
            name='Notification',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('type', models.CharField(max_length=32)),
                ('title', models.CharField(max_length=255)),
                ('message', models.TextField(blank=True, default='')),
                ('related_id', models.CharField(blank=True, default='', max_length=64)),
                ('data', models.JSONField(blank=True, default=dict)),
                ('is_read', models.BooleanField(default=False)),
                ('date_added', models.DateTimeField(auto_now_add=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='notifications', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-date_added'],
            },
        ),
    ]
