# apps/delivery/urls.py
from django.urls import path
from .views import (
    AvailableDeliveriesAPIView,
    ActiveDeliveryAPIView,
    DeliveryHistoryAPIView,
    AcceptDeliveryAPIView,
    StartDeliveryAPIView,
    CompleteDeliveryAPIView,
    DeliveryPhotosAPIView,
    DeliveryPhotoAPIView,
)

urlpatterns = [
    # Directory
    path("available/", AvailableDeliveriesAPIView.as_view()),
    path("active/", ActiveDeliveryAPIView.as_view()),
    path("history/", DeliveryHistoryAPIView.as_view()),

    # Lifecycle
    path("<int:delivery_id>/accept/", AcceptDeliveryAPIView.as_view()),
    path("<int:delivery_id>/start/", StartDeliveryAPIView.as_view()),
    path("<int:delivery_id>/complete/", CompleteDeliveryAPIView.as_view()),

    # Proof photos
    path("<int:delivery_id>/photos/", DeliveryPhotosAPIView.as_view()),
    path("<int:delivery_id>/photos/<str:kind>/", DeliveryPhotoAPIView.as_view()),
]
