# apps/notifications/urls.py
from django.urls import path
from .views import (
    NotificationListAPIView,
    UnreadCountAPIView,
    NotificationDetailAPIView,
    MarkNotificationReadAPIView,
    MarkManyReadAPIView,
)

urlpatterns = [
    path("", NotificationListAPIView.as_view()),
    path("unread-count/", UnreadCountAPIView.as_view()),
    path("read/", MarkManyReadAPIView.as_view()),
    path("read-all/", MarkManyReadAPIView.as_view(mark_all=True)),
    path("<int:notification_id>/", NotificationDetailAPIView.as_view()),
    path("<int:notification_id>/read/", MarkNotificationReadAPIView.as_view()),
]
