"""Service providers for routers.

Tests override ``get_settings``, ``get_email_service`` and
``get_captcha_verifier`` through ``app.dependency_overrides``.
"""

from collections.abc import Generator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from hbank.config import Settings, settings
from hbank.database import get_db
from hbank.services.captcha_service import CaptchaVerifier
from hbank.services.credential_change_service import CredentialChangeService
from hbank.services.email_confirmation_service import EmailConfirmationService
from hbank.services.email_service import EmailService, MailDispatcher
from hbank.services.registration_service import RegistrationService
from hbank.services.session_service import SessionService
from hbank.services.two_factor_service import TwoFactorService


def get_settings() -> Settings:
    return settings


def get_mail_dispatcher(request: Request) -> MailDispatcher:
    """The dispatcher created by the application lifespan."""
    return request.app.state.mail_dispatcher


def get_email_service(
    dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
    app_settings: Settings = Depends(get_settings),
) -> EmailService:
    return EmailService(dispatcher, app_settings)


def get_captcha_verifier(
    app_settings: Settings = Depends(get_settings),
) -> Generator[CaptchaVerifier, None, None]:
    """Per-request verifier; its HTTP client is closed when the request ends."""
    with CaptchaVerifier(app_settings) as verifier:
        yield verifier


def get_registration_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    captcha: CaptchaVerifier = Depends(get_captcha_verifier),
) -> RegistrationService:
    return RegistrationService(db, app_settings, captcha)


def get_email_confirmation_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
) -> EmailConfirmationService:
    return EmailConfirmationService(db, app_settings, email_service)


def get_session_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> SessionService:
    return SessionService(db, app_settings)


def get_credential_change_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
    email_service: EmailService = Depends(get_email_service),
) -> CredentialChangeService:
    return CredentialChangeService(db, app_settings, email_service)


def get_two_factor_service(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> TwoFactorService:
    return TwoFactorService(db, app_settings)
