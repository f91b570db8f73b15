# apps/drivers/views.py
import logging

from rest_framework import status
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.accounts.authentication import RegistrationTokenAuthentication
from apps.accounts.permissions import IsDriver
from .serializers import (
    AvailabilitySerializer,
    BasicInfoSerializer,
    DocumentUploadSerializer,
    DriverProfileSerializer,
    EarnTypeSerializer,
    LocationSerializer,
    LoginSerializer,
    PhoneSerializer,
    ProfileUpdateSerializer,
    VerifyCodeSerializer,
)
from .services import DriverService, RegistrationService

logger = logging.getLogger(__name__)


class PublicAPIView(APIView):
    """No credentials; stale tokens on the request are ignored."""
    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]


class RegistrationAPIView(APIView):
    """Continuation-token endpoints; request.user is a RegistrationPrincipal."""
    authentication_classes = [RegistrationTokenAuthentication]
    permission_classes = [IsAuthenticated]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "registration"


# ------------------------------------------------------------------
# Phone verification
# ------------------------------------------------------------------
class RegisterPhoneAPIView(PublicAPIView):
    throttle_scope = "otp_send"

    def post(self, request):
        serializer = PhoneSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.initiate_phone_verification(serializer.validated_data["phone"])
        return Response({"message": "Verification code sent", **result})


class ResendCodeAPIView(PublicAPIView):
    throttle_scope = "otp_send"

    def post(self, request):
        serializer = PhoneSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.resend_code(serializer.validated_data["phone"])
        return Response({"message": "Verification code sent", **result})


class VerifyCodeAPIView(PublicAPIView):
    throttle_scope = "registration"

    def post(self, request):
        serializer = VerifyCodeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.confirm_phone_verification(
            serializer.validated_data["phone"], serializer.validated_data["code"]
        )
        return Response(result)


# ------------------------------------------------------------------
# Registration steps
# ------------------------------------------------------------------
class CompleteBasicInfoAPIView(RegistrationAPIView):

    def post(self, request):
        serializer = BasicInfoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.complete_basic_info(request.user, **serializer.validated_data)
        return Response(result)


class EarnTypeAPIView(RegistrationAPIView):

    def post(self, request):
        serializer = EarnTypeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.setup_earn_type(request.user, **serializer.validated_data)
        return Response(result)


class UploadDocumentAPIView(RegistrationAPIView):
    parser_classes = [MultiPartParser, FormParser]

    def post(self, request, document_type):
        serializer = DocumentUploadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = RegistrationService.upload_document(
            request.user, document_type, serializer.validated_data["file"]
        )
        return Response(result, status=status.HTTP_201_CREATED)


class DeleteDocumentAPIView(RegistrationAPIView):

    def delete(self, request, document_type):
        result = RegistrationService.delete_document(request.user, document_type)
        return Response(result)


class FinalizeRegistrationAPIView(RegistrationAPIView):

    def post(self, request):
        result = RegistrationService.finalize(request.user)
        return Response(result)


class RegistrationStatusAPIView(RegistrationAPIView):

    def get(self, request):
        return Response(RegistrationService.get_status(request.user))


# ------------------------------------------------------------------
# Session
# ------------------------------------------------------------------
class DriverLoginAPIView(PublicAPIView):
    throttle_scope = "login"

    def post(self, request):
        serializer = LoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = DriverService.login(
            serializer.validated_data["email"], serializer.validated_data["password"]
        )
        return Response(result)


class DriverProfileAPIView(APIView):
    permission_classes = [IsDriver]

    def get(self, request):
        return Response(DriverProfileSerializer(request.user.driver_profile).data)

    def patch(self, request):
        serializer = ProfileUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = DriverService.update_profile(request.user.driver_profile, **serializer.validated_data)
        return Response(DriverProfileSerializer(driver).data)


class AvailabilityAPIView(APIView):
    permission_classes = [IsDriver]

    def post(self, request):
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = DriverService.set_availability(
            request.user.driver_profile, serializer.validated_data["is_available"]
        )
        return Response({"is_available": driver.is_available})


class LocationAPIView(APIView):
    """
    Driver: GPS updates. High frequency, so throttled separately.
    """
    permission_classes = [IsDriver]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "location_ping"

    def post(self, request):
        serializer = LocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = DriverService.update_location(
            request.user.driver_profile,
            serializer.validated_data["latitude"],
            serializer.validated_data["longitude"],
        )
        return Response({
            "latitude": str(driver.current_lat),
            "longitude": str(driver.current_lng),
            "updated_at": driver.location_updated_at,
        })
