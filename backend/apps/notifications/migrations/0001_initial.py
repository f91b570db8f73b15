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
            name="PhoneVerificationCode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("phone", models.CharField(db_index=True, max_length=20)),
                ("code", models.CharField(max_length=6)),
                ("purpose", models.CharField(
                    choices=[("driver_registration", "Driver registration")],
                    default="driver_registration",
                    max_length=30,
                )),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("expires_at", models.DateTimeField(db_index=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["phone", "purpose", "created_at"], name="notificatio_phone_8c1f0e_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("type", models.CharField(
                    choices=[
                        ("delivery_available", "Delivery available"),
                        ("delivery_accepted", "Delivery accepted"),
                        ("delivery_started", "Delivery started"),
                        ("delivery_completed", "Delivery completed"),
                        ("delivery_cancelled", "Delivery cancelled"),
                        ("delivery_photo_required", "Delivery photo required"),
                        ("delivery_photo_uploaded", "Delivery photo uploaded"),
                        ("registration_completed", "Registration completed"),
                        ("profile_updated", "Profile updated"),
                        ("document_uploaded", "Document uploaded"),
                        ("document_verified", "Document verified"),
                        ("verification_pending", "Verification pending"),
                        ("verification_approved", "Verification approved"),
                        ("verification_rejected", "Verification rejected"),
                        ("payment_success", "Payment success"),
                        ("payment_failed", "Payment failed"),
                        ("account_suspended", "Account suspended"),
                        ("account_reactivated", "Account reactivated"),
                        ("new_feature", "New feature"),
                        ("maintenance_notice", "Maintenance notice"),
                        ("new_message", "New message"),
                        ("conversation_started", "Conversation started"),
                        ("general", "General"),
                    ],
                    db_index=True,
                    max_length=40,
                )),
                ("title", models.CharField(max_length=100)),
                ("message", models.CharField(max_length=500)),
                ("data", models.JSONField(blank=True, default=dict)),
                ("priority", models.CharField(
                    choices=[("low", "Low"), ("medium", "Medium"), ("high", "High")],
                    default="medium",
                    max_length=10,
                )),
                ("action_button", models.JSONField(blank=True, null=True)),
                ("is_read", models.BooleanField(default=False)),
                ("read_at", models.DateTimeField(blank=True, null=True)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("user", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE,
                    related_name="notifications",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "is_read", "-created_at"], name="notificatio_user_id_4b7a2d_idx"),
                ],
            },
        ),
    ]
