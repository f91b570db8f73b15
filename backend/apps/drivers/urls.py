# apps/drivers/urls.py
from django.urls import path
from .views import (
    RegisterPhoneAPIView,
    ResendCodeAPIView,
    VerifyCodeAPIView,
    CompleteBasicInfoAPIView,
    EarnTypeAPIView,
    UploadDocumentAPIView,
    DeleteDocumentAPIView,
    FinalizeRegistrationAPIView,
    RegistrationStatusAPIView,
    DriverLoginAPIView,
    DriverProfileAPIView,
    AvailabilityAPIView,
    LocationAPIView,
)

urlpatterns = [
    # Onboarding (public)
    path("register/phone/", RegisterPhoneAPIView.as_view()),
    path("register/verify-otp/", VerifyCodeAPIView.as_view()),
    path("register/resend-otp/", ResendCodeAPIView.as_view()),

    # Onboarding (continuation token)
    path("register/complete/", CompleteBasicInfoAPIView.as_view()),
    path("register/earn-type/", EarnTypeAPIView.as_view()),
    path("register/upload-document/<str:document_type>/", UploadDocumentAPIView.as_view()),
    path("register/document/<str:document_type>/", DeleteDocumentAPIView.as_view()),
    path("register/finalize/", FinalizeRegistrationAPIView.as_view()),
    path("register/status/", RegistrationStatusAPIView.as_view()),

    # Session
    path("login/", DriverLoginAPIView.as_view()),
    path("profile/", DriverProfileAPIView.as_view()),
    path("availability/", AvailabilityAPIView.as_view()),
    path("location/", LocationAPIView.as_view()),
]
