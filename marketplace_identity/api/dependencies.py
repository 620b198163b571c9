"""
FastAPI dependencies - Service wiring and dependency injection factories.

The identity service and its collaborators are built once during app
startup by ``build_identity_service`` and stored on ``app.state``. Route
handlers receive them through Depends() so tests can override them.
"""

from datetime import timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

from marketplace_identity.adapters.notifications import (
    ConsoleNotificationSender,
    SmtpEmailSender,
    TwilioSmsSender,
)
from marketplace_identity.adapters.repository.postgres import PostgresAccountRepository
from marketplace_identity.config.settings import Settings
from marketplace_identity.domain.exceptions import AuthError
from marketplace_identity.domain.hashing import PasswordHasher
from marketplace_identity.domain.identity import AccountView, IdentityService
from marketplace_identity.domain.notifications import OTPDispatcher
from marketplace_identity.domain.otp import OTPEngine
from marketplace_identity.domain.ports import NotificationSender
from marketplace_identity.domain.tokens import TokenIssuer


def build_email_sender(settings: Settings) -> NotificationSender:
    """Select the e-mail channel adapter from settings."""
    if settings.notification_backend == "smtp":
        return SmtpEmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            from_name=settings.smtp_from_name,
            timeout=settings.smtp_timeout_seconds,
            ttl_minutes=settings.otp_ttl_seconds // 60,
        )
    return ConsoleNotificationSender()


def build_sms_sender(settings: Settings) -> NotificationSender | None:
    """Twilio SMS channel, or None when Twilio is not configured."""
    if not settings.sms_enabled:
        return None
    return TwilioSmsSender(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        timeout=settings.sms_timeout_seconds,
        ttl_minutes=settings.otp_ttl_seconds // 60,
    )


def build_identity_service(settings: Settings, pool: ConnectionPool) -> IdentityService:
    """
    Wire the identity service with its collaborators.

    Called once from the application lifespan; the returned service is
    shared by all requests.
    """
    dispatcher = OTPDispatcher(
        email_sender=build_email_sender(settings),
        sms_sender=build_sms_sender(settings),
        max_workers=settings.notification_workers,
    )
    return IdentityService(
        repository=PostgresAccountRepository(pool),
        dispatcher=dispatcher,
        token_issuer=TokenIssuer(
            secret=settings.jwt_secret,
            lifetime=timedelta(days=settings.jwt_expire_days),
            algorithm=settings.jwt_algorithm,
        ),
        hasher=PasswordHasher(rounds=settings.bcrypt_cost),
        otp_engine=OTPEngine(
            ttl=timedelta(seconds=settings.otp_ttl_seconds),
            length=settings.otp_length,
        ),
        min_password_length=settings.min_password_length,
        max_write_attempts=settings.max_write_attempts,
    )


def get_identity_service(request: Request) -> IdentityService:
    """
    Get the identity service from app state.

    The service is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.identity_service


# Bearer token security scheme for OpenAPI documentation.
# Missing tokens are rejected in get_current_account.
http_bearer = HTTPBearer(auto_error=False)


def get_current_account(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    service: IdentityService = Depends(get_identity_service),
) -> AccountView:
    """
    Resolve the bearer session token to the calling account.

    Raises:
        AuthError: Missing or non-bearer Authorization header
        InvalidSignature, TokenExpired, InvalidCredentials, AccountDeactivated:
            From IdentityService.authenticate
    """
    if credentials is None:
        raise AuthError("Not authorized, no token")
    return service.authenticate(credentials.credentials)
