# apps/accounts/authentication.py
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, AuthenticationFailed
from django.core.cache import cache

from apps.utils.exceptions import BusinessLogicException
from .tokens import TokenService


class SecureJWTAuthentication(JWTAuthentication):
    """
    Session-token authentication with forceful logout
    (revocation via a jti blocklist in the cache).
    """
    def get_validated_token(self, raw_token):
        try:
            validated_token = super().get_validated_token(raw_token)
        except InvalidToken:
            raise InvalidToken("Token is invalid or expired")

        # Check for Revocation (Blocklist)
        jti = validated_token.get('jti')
        if jti and cache.get(f"blocklist:{jti}"):
            raise AuthenticationFailed("This session has been logged out.")

        return validated_token


class RegistrationTokenAuthentication(JWTAuthentication):
    """
    Accepts only continuation (registration) tokens.
    request.user becomes a RegistrationPrincipal, not a User row.
    """
    def get_validated_token(self, raw_token):
        try:
            return TokenService.decode_registration(raw_token)
        except BusinessLogicException as e:
            raise InvalidToken(e.message)

    def get_user(self, validated_token):
        return validated_token
