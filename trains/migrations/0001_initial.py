from decimal import Decimal

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Train',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('train_number', models.CharField(max_length=10, unique=True)),
                ('train_name', models.CharField(max_length=255)),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'trains',
                'indexes': [
                    models.Index(fields=['train_number'], name='trains_train_n_5e1c7a_idx'),
                    models.Index(fields=['is_active'], name='trains_is_acti_0b9f3d_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Route',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('source_station', models.CharField(max_length=100)),
                ('destination_station', models.CharField(max_length=100)),
                ('departure_time', models.TimeField()),
                ('arrival_time', models.TimeField()),
                ('price', models.DecimalField(decimal_places=2, max_digits=8, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('is_active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('train', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='routes', to='trains.train')),
            ],
            options={
                'db_table': 'routes',
                'indexes': [
                    models.Index(fields=['source_station', 'destination_station'], name='routes_source__8d2e4f_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Compartment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('compartment_name', models.CharField(max_length=10)),
                ('class_type', models.CharField(choices=[('SL', 'Sleeper'), ('3A', 'AC 3 Tier'), ('2A', 'AC 2 Tier'), ('1A', 'AC First Class')], default='SL', max_length=2)),
                ('berth_count', models.PositiveSmallIntegerField(default=72, validators=[django.core.validators.MinValueValidator(1)])),
                ('train', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='compartments', to='trains.train')),
            ],
            options={
                'db_table': 'compartments',
                'ordering': ['compartment_name'],
                'unique_together': {('train', 'compartment_name')},
            },
        ),
        migrations.CreateModel(
            name='Seat',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('seat_number', models.CharField(max_length=20)),
                ('berth_type', models.CharField(choices=[('LOWER', 'Lower'), ('MIDDLE', 'Middle'), ('UPPER', 'Upper'), ('SIDE_LOWER', 'Side Lower'), ('SIDE_UPPER', 'Side Upper')], max_length=10)),
                ('is_available', models.BooleanField(default=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('compartment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='seats', to='trains.compartment')),
                ('route', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='seats', to='trains.route')),
            ],
            options={
                'db_table': 'seats',
                'unique_together': {('route', 'seat_number')},
                'indexes': [
                    models.Index(fields=['route', 'is_available'], name='seats_route_i_7c4a1b_idx'),
                ],
            },
        ),
    ]
