# apps/delivery/views.py
from rest_framework import generics, status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.permissions import IsVerifiedDriver
from .serializers import (
    DeliveryHistoryQuerySerializer,
    DeliverySerializer,
    PhotoRecordSerializer,
    PhotoUploadSerializer,
)
from .services import DeliveryDirectory, DeliveryService


class AvailableDeliveriesAPIView(generics.ListAPIView):
    """
    Driver: unclaimed deliveries, newest first.
    """
    permission_classes = [IsVerifiedDriver]
    serializer_class = DeliverySerializer

    def get_queryset(self):
        return DeliveryDirectory.list_available().select_related("sender")


class ActiveDeliveryAPIView(APIView):
    """
    Driver: the one delivery currently accepted or in transit, if any.
    """
    permission_classes = [IsVerifiedDriver]

    def get(self, request):
        delivery = DeliveryDirectory.active_for(request.user.driver_profile)
        return Response({
            "delivery": DeliverySerializer(delivery).data if delivery else None,
        })


class DeliveryHistoryAPIView(APIView):
    permission_classes = [IsVerifiedDriver]

    def get(self, request):
        query = DeliveryHistoryQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        history = DeliveryDirectory.history(
            request.user.driver_profile,
            page=query.validated_data["page"],
            limit=query.validated_data.get("limit"),
        )
        history["results"] = DeliverySerializer(history["results"], many=True).data
        return Response(history)


class AcceptDeliveryAPIView(APIView):
    """
    Driver: claim an unclaimed delivery. Losing a race is 409 not_available.
    """
    permission_classes = [IsVerifiedDriver]

    def post(self, request, delivery_id):
        delivery = DeliveryService.claim(request.user.driver_profile, delivery_id)
        return Response(DeliverySerializer(delivery).data)


class StartDeliveryAPIView(APIView):
    permission_classes = [IsVerifiedDriver]

    def post(self, request, delivery_id):
        delivery = DeliveryService.start(request.user.driver_profile, delivery_id)
        return Response(DeliverySerializer(delivery).data)


class CompleteDeliveryAPIView(APIView):
    permission_classes = [IsVerifiedDriver]

    def post(self, request, delivery_id):
        delivery = DeliveryService.complete(request.user.driver_profile, delivery_id)
        return Response(DeliverySerializer(delivery).data)


class DeliveryPhotosAPIView(APIView):
    permission_classes = [IsVerifiedDriver]

    def get(self, request, delivery_id):
        photos = DeliveryService.get_photos(request.user.driver_profile, delivery_id)
        return Response({
            kind: PhotoRecordSerializer(record).data if record else None
            for kind, record in photos.items()
        })


class DeliveryPhotoAPIView(APIView):
    """
    Driver: attach (POST, multipart `photo`) or remove (DELETE) the
    dropoff / escrow photo of a delivery they hold.
    """
    permission_classes = [IsVerifiedDriver]
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, delivery_id, kind):
        serializer = PhotoUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        delivery = DeliveryService.upload_photo(
            request.user.driver_profile, delivery_id, kind, serializer.validated_data["photo"]
        )
        return Response(DeliverySerializer(delivery).data, status=status.HTTP_201_CREATED)

    def delete(self, request, delivery_id, kind):
        DeliveryService.delete_photo(request.user.driver_profile, delivery_id, kind)
        return Response(status=status.HTTP_204_NO_CONTENT)
