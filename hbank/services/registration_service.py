"""Account registration behind a CAPTCHA gate."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hbank.config import Settings
from hbank.models import User
from hbank.repositories import DuplicateError, UserRepository
from hbank.services.auth_service import AuthService
from hbank.services.captcha_service import CaptchaVerifier
from hbank.services.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    TransientError,
    store_errors_as_transient,
)
from hbank.services.http_client import HTTPClientError
from hbank.services.security_audit_service import SecurityAuditService, SecurityEventType
from hbank.services.session_service import new_token_key

logger = logging.getLogger(__name__)


class RegistrationService:
    """Creates unconfirmed accounts."""

    def __init__(self, db: Session, settings: Settings, captcha: CaptchaVerifier) -> None:
        self._db = db
        self._auth = AuthService(settings)
        self._captcha = captcha
        self._users = UserRepository(db)

    @store_errors_as_transient
    def register(self, email: str, name: str, password: str, captcha_token: str = "") -> str:
        """Create an account and return its id. No confirmation code is sent.

        Raises:
            InvalidCredentialsError: the CAPTCHA token was rejected
            TransientError: the CAPTCHA provider could not be reached
            ConflictError: the email is already registered
        """
        try:
            captcha_ok = self._captcha.verify(captcha_token)
        except HTTPClientError as e:
            logger.warning(f"Captcha verification unavailable: {e}")
            raise TransientError("Captcha verification unavailable") from e
        if not captcha_ok:
            raise InvalidCredentialsError("Invalid captcha token")

        email = email.strip().lower()
        if self._users.email_taken(email):
            raise ConflictError("Email already registered")

        user = User(
            email=email,
            name=name.strip(),
            password_hash=self._auth.hash_password(password),
            email_confirmed=False,
            two_factor_enabled=False,
            token_key=new_token_key(),
        )
        try:
            self._users.add(user)
            SecurityAuditService.log_event(self._db, SecurityEventType.REGISTERED, user_id=user.id)
            self._db.commit()
        except DuplicateError as e:
            raise ConflictError("Email already registered") from e
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to create user")
            raise TransientError() from e

        logger.info(f"User registered (pending confirmation): {user.email}")
        return user.id
