# apps/drivers/serializers.py
from rest_framework import serializers

from . import registration as reg
from .models import Driver


class PhoneSerializer(serializers.Serializer):
    phone = serializers.CharField(max_length=20)


class VerifyCodeSerializer(serializers.Serializer):
    phone = serializers.CharField(max_length=20)
    # Any string that is not the issued code is an invalid_code, not a validation error
    code = serializers.CharField(max_length=32)


class BasicInfoSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=150)
    last_name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, max_length=128, write_only=True, trim_whitespace=False)


class EarnTypeSerializer(serializers.Serializer):
    # Closed-set validation happens in the service so the error is invalid_input either way
    earn_type = serializers.CharField(max_length=20)
    city = serializers.CharField(max_length=100)
    referral_code = serializers.CharField(max_length=50, required=False, allow_blank=True)


class DocumentUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class AvailabilitySerializer(serializers.Serializer):
    is_available = serializers.BooleanField()


class LocationSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=12, decimal_places=8)
    longitude = serializers.DecimalField(max_digits=12, decimal_places=8)


class DriverProfileSerializer(serializers.ModelSerializer):
    phone = serializers.CharField(source="user.phone", read_only=True)
    first_name = serializers.CharField(source="user.first_name", read_only=True)
    last_name = serializers.CharField(source="user.last_name", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    documents = serializers.SerializerMethodField()

    class Meta:
        model = Driver
        fields = (
            "id",
            "phone",
            "first_name",
            "last_name",
            "email",
            "registration_step",
            "verified",
            "earn_type",
            "city",
            "referral_code",
            "is_available",
            "current_lat",
            "current_lng",
            "location_updated_at",
            "total_deliveries",
            "documents",
            "created_at",
        )
        read_only_fields = fields

    def get_documents(self, obj):
        return {
            key: {"url": record.get("url"), "uploaded_at": record.get("uploaded_at")}
            for key, record in (obj.documents or {}).items()
        }


class ProfileUpdateSerializer(serializers.Serializer):
    first_name = serializers.CharField(max_length=150, required=False)
    last_name = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False)
    earn_type = serializers.ChoiceField(choices=reg.EARN_TYPES, required=False)
    city = serializers.CharField(max_length=100, required=False)
    referral_code = serializers.CharField(max_length=50, required=False, allow_blank=True)
