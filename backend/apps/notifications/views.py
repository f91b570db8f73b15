# apps/notifications/views.py
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import generics
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Notification
from .serializers import NotificationSerializer, MarkReadSerializer


def inbox_for(user):
    """The caller's notifications, minus anything past its expiry."""
    now = timezone.now()
    return Notification.objects.filter(user=user).filter(
        Q(expires_at__isnull=True) | Q(expires_at__gt=now)
    )


class NotificationListAPIView(generics.ListAPIView):
    """
    Driver inbox, newest first. Filter with ?type=&is_read=&priority=.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer
    filterset_fields = ("type", "is_read", "priority")
    ordering_fields = ("created_at", "priority")

    def get_queryset(self):
        return inbox_for(self.request.user).order_by("-created_at")


class UnreadCountAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({"unread_count": inbox_for(request.user).filter(is_read=False).count()})


class NotificationDetailAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, notification_id):
        notification = get_object_or_404(inbox_for(request.user), pk=notification_id)
        return Response(NotificationSerializer(notification).data)

    def delete(self, request, notification_id):
        notification = get_object_or_404(Notification, pk=notification_id, user=request.user)
        notification.delete()
        return Response({"status": "deleted"})


class MarkNotificationReadAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, notification_id):
        notification = get_object_or_404(inbox_for(request.user), pk=notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=["is_read", "read_at"])
        return Response(NotificationSerializer(notification).data)


class MarkManyReadAPIView(APIView):
    """
    POST {"ids": [...]} marks those; POST to read-all/ marks everything.
    """
    permission_classes = [IsAuthenticated]
    mark_all = False

    def post(self, request):
        qs = inbox_for(request.user).filter(is_read=False)
        if not self.mark_all:
            serializer = MarkReadSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            qs = qs.filter(pk__in=serializer.validated_data["ids"])

        updated = qs.update(is_read=True, read_at=timezone.now())
        return Response({"updated": updated})
