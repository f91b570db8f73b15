import time
import logging
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from django.core.cache import cache

from .serializers import UserSerializer

logger = logging.getLogger(__name__)


class MeAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class LogoutAPIView(APIView):
    """
    Revokes the presented session token until it would have expired anyway.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        token = request.auth
        jti = token.get("jti")
        ttl = int(token.get("exp", 0) - time.time())
        if jti and ttl > 0:
            cache.set(f"blocklist:{jti}", "true", timeout=ttl)
        logger.info(f"Session revoked for user {request.user.pk}")
        return Response({"status": "logged_out"})
