import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("drivers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Delivery",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("pickup_address", models.CharField(max_length=255)),
                ("pickup_lat", models.DecimalField(decimal_places=6, max_digits=9)),
                ("pickup_lng", models.DecimalField(decimal_places=6, max_digits=9)),
                ("dropoff_address", models.CharField(max_length=255)),
                ("dropoff_lat", models.DecimalField(decimal_places=6, max_digits=9)),
                ("dropoff_lng", models.DecimalField(decimal_places=6, max_digits=9)),
                ("vehicle_type", models.CharField(
                    choices=[("motorcycle", "Motorcycle"), ("car", "Car"), ("van", "Van"), ("truck", "Truck")],
                    default="car",
                    max_length=20,
                )),
                ("scheduled_time", models.DateTimeField(blank=True, null=True)),
                ("price", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("total_cost", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("status", models.CharField(
                    choices=[
                        ("upcoming", "Upcoming"),
                        ("pending", "Pending"),
                        ("accepted", "Accepted"),
                        ("in-transit", "In Transit"),
                        ("completed", "Completed"),
                        ("cancelled", "Cancelled"),
                    ],
                    db_index=True,
                    default="upcoming",
                    max_length=20,
                )),
                ("escrow_active", models.BooleanField(default=False)),
                ("escrow_status", models.CharField(
                    choices=[
                        ("pending_verification", "Pending Verification"),
                        ("verified", "Verified"),
                        ("released", "Released"),
                        ("refunded", "Refunded"),
                    ],
                    default="pending_verification",
                    max_length=30,
                )),
                ("escrow_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("receiver_name", models.CharField(blank=True, max_length=100)),
                ("receiver_phone", models.CharField(blank=True, max_length=20)),
                ("receiver_note", models.TextField(blank=True)),
                ("photos", models.JSONField(blank=True, default=dict)),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("driver", models.ForeignKey(
                    blank=True,
                    null=True,
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="deliveries",
                    to="drivers.driver",
                )),
                ("sender", models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT,
                    related_name="sent_deliveries",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        condition=models.Q(("driver__isnull", True)),
                        fields=["status", "-created_at"],
                        name="available_delivery_idx",
                    ),
                    models.Index(fields=["driver", "-created_at"], name="driver_history_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ("accepted", "in-transit"))),
                        fields=("driver",),
                        name="one_active_delivery_per_driver",
                    ),
                ],
            },
        ),
    ]
