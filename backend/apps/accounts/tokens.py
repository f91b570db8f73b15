# apps/accounts/tokens.py
from datetime import timedelta

from django.conf import settings
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken, Token

from apps.utils.exceptions import InvalidToken


class RegistrationToken(Token):
    """
    Short-lived continuation token for the onboarding flow.
    Signed with the same key as session tokens but carries its own
    token_type, so session authentication rejects it and vice versa.
    """
    token_type = "registration"
    lifetime = timedelta(hours=settings.REGISTRATION_TOKEN_TTL_HOURS)


class RegistrationPrincipal:
    """
    Who is presenting a continuation token. Stands in for request.user on
    registration endpoints; `step` is only what the token claims.
    """
    is_authenticated = True
    is_anonymous = False

    def __init__(self, phone=None, driver_id=None, step=None):
        self.phone = phone
        self.driver_id = driver_id
        self.step = step

    @property
    def pk(self):
        return f"driver:{self.driver_id}" if self.driver_id else f"phone:{self.phone}"

    @classmethod
    def from_token(cls, token):
        return cls(
            phone=token.get("phone"),
            driver_id=token.get("driver_id"),
            step=token.get("step"),
        )

    def __repr__(self):
        return f"RegistrationPrincipal(driver_id={self.driver_id!r}, step={self.step!r})"


class TokenService:

    @staticmethod
    def registration_token(phone, driver_id=None, email=None, step=None) -> str:
        token = RegistrationToken()
        token["phone"] = phone
        if driver_id is not None:
            token["driver_id"] = driver_id
        if email:
            token["email"] = email
        if step:
            token["step"] = step
        return str(token)

    @staticmethod
    def registration_token_for(driver, step) -> str:
        return TokenService.registration_token(
            driver.user.phone, driver_id=driver.pk, email=driver.user.email, step=step
        )

    @staticmethod
    def session_token(driver) -> str:
        """
        Long-lived bearer token for a fully registered driver.
        """
        token = AccessToken.for_user(driver.user)
        token["type"] = "driver"
        token["driver_id"] = driver.pk
        return str(token)

    @staticmethod
    def decode_registration(raw_token) -> RegistrationPrincipal:
        try:
            token = RegistrationToken(raw_token)
        except TokenError as e:
            raise InvalidToken(f"Invalid or expired registration token: {e}")

        principal = RegistrationPrincipal.from_token(token)
        if not principal.phone and principal.driver_id is None:
            raise InvalidToken("Registration token carries no subject")
        return principal
