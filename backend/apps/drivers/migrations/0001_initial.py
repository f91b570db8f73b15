import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Driver",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("registration_step", models.CharField(
                    choices=[
                        ("verified_phone", "Phone verified"),
                        ("basic_info_completed", "Basic info completed"),
                        ("earn_type_completed", "Earn type completed"),
                        ("documents_uploading", "Uploading documents"),
                        ("completed", "Completed"),
                    ],
                    db_index=True,
                    default="verified_phone",
                    max_length=30,
                )),
                ("verified", models.BooleanField(default=False)),
                ("earn_type", models.CharField(
                    blank=True,
                    choices=[("car", "Car"), ("scooter", "Scooter"), ("bicycle", "Bicycle"), ("truck", "Truck")],
                    max_length=20,
                )),
                ("city", models.CharField(blank=True, max_length=100)),
                ("referral_code", models.CharField(blank=True, max_length=50)),
                ("is_available", models.BooleanField(default=False)),
                ("current_lat", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("current_lng", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("location_updated_at", models.DateTimeField(blank=True, null=True)),
                ("total_deliveries", models.PositiveIntegerField(default=0)),
                ("documents", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="driver_profile",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "indexes": [models.Index(fields=["verified", "is_available"], name="driver_available_idx")],
            },
        ),
    ]
