from rest_framework import serializers

from .models import Delivery


class PhotoRecordSerializer(serializers.Serializer):
    url = serializers.CharField()
    original_name = serializers.CharField(required=False, allow_blank=True)
    uploaded_at = serializers.CharField(required=False)


class DeliverySerializer(serializers.ModelSerializer):
    """
    Standard serializer for Delivery instances.
    Blob references stay server-side; clients only see URLs.
    """
    sender_name = serializers.CharField(source="sender.full_name", read_only=True)
    photos = serializers.SerializerMethodField()

    class Meta:
        model = Delivery
        fields = (
            "id",
            "sender_name",
            "driver",
            "status",
            "pickup_address",
            "pickup_lat",
            "pickup_lng",
            "dropoff_address",
            "dropoff_lat",
            "dropoff_lng",
            "vehicle_type",
            "scheduled_time",
            "price",
            "total_cost",
            "escrow_active",
            "escrow_status",
            "escrow_fee",
            "receiver_name",
            "receiver_phone",
            "receiver_note",
            "photos",
            "accepted_at",
            "started_at",
            "completed_at",
            "created_at",
        )
        read_only_fields = fields

    def get_photos(self, obj):
        return {
            kind: PhotoRecordSerializer(record).data
            for kind, record in (obj.photos or {}).items()
        }


class DeliveryHistoryQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, required=False)


class PhotoUploadSerializer(serializers.Serializer):
    photo = serializers.FileField()
