"""Email confirmation flow: Unconfirmed -> CodeSent -> Confirmed."""

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hbank.config import Settings
from hbank.models import CodeKind, RateLimitKind
from hbank.repositories import CodeRepository, RateLimitRepository, UserRepository
from hbank.services import secret_generator
from hbank.services.auth_service import AuthService
from hbank.services.clock import Clock, is_expired, utcnow
from hbank.services.email_service import EmailService
from hbank.services.exceptions import (
    ConflictError,
    NotFoundError,
    RateLimitedError,
    TransientError,
)
from hbank.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)


class EmailConfirmationService:
    """Issues and checks confirmation codes sent to a user's address."""

    def __init__(
        self,
        db: Session,
        settings: Settings,
        email_service: EmailService,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._settings = settings
        self._email = email_service
        self._clock = clock
        self._users = UserRepository(db)
        self._codes = CodeRepository(db)
        self._rate_limits = RateLimitRepository(db)

    def request_code(self, email: str) -> None:
        """Send a fresh confirmation code to ``email``.

        Raises:
            RateLimitedError: a code was requested for this address within the timeout
            NotFoundError: no account uses this address
            ConflictError: the account is already confirmed
        """
        email = email.strip().lower()
        now = self._clock()
        window = timedelta(minutes=self._settings.confirm_email_timeout_minutes)

        try:
            # Checked before the user lookup so unknown addresses are limited too
            if not self._rate_limits.try_acquire(RateLimitKind.CONFIRM_EMAIL, email, now, window):
                self._db.commit()
                raise RateLimitedError()
            self._db.commit()

            user = self._users.find_by_email(email)
            if user is None:
                logger.info(f"Confirmation code requested for unknown email: {email}")
                raise NotFoundError("No account with this email")
            if user.email_confirmed:
                raise ConflictError("Email already confirmed")

            code = secret_generator.random_code(self._settings.email_code_length)
            self._codes.replace(
                user.id,
                CodeKind.CONFIRM_EMAIL,
                AuthService.hash_token(code),
                now + timedelta(minutes=self._settings.email_code_expire_minutes),
            )
            SecurityAuditService.log_event(
                self._db, SecurityEventType.EMAIL_CODE_SENT, user_id=user.id
            )
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to issue confirmation code")
            raise TransientError() from e

        # The code is durable now; delivery failures only reach the log
        self._email.send_confirmation_code(user.email, user.name, code)
        logger.info(f"Confirmation code issued for user: {user.email}")

    def verify_code(self, email: str, code: str) -> bool:
        """Confirm the account if ``code`` matches its unexpired outstanding code.

        A matching but expired code is deleted; a non-matching code leaves the
        outstanding one in place so the user can retry.
        """
        email = email.strip().lower()
        try:
            user = self._users.find_by_email(email)
            if user is None:
                return False
            stored = self._codes.find(user.id, CodeKind.CONFIRM_EMAIL)
            if stored is None:
                return False
            if not AuthService.verify_token_hash(code, stored.code_hash):
                return False

            expired = is_expired(stored.expires_at, self._clock())
            won = self._codes.consume(stored)
            if expired or not won:
                self._db.commit()
                return False

            user.email_confirmed = True
            SecurityAuditService.log_event(
                self._db, SecurityEventType.EMAIL_CONFIRMED, user_id=user.id
            )
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to verify confirmation code")
            raise TransientError() from e

        logger.info(f"Email confirmed for user: {user.email}")
        return True

    def delete_unconfirmed_account(self, user_id: str, code: str) -> bool:
        """Delete an account that never confirmed its address.

        Whoever received the confirmation code may remove an account someone
        else registered with their address. For an already confirmed account
        the matching code is consumed and nothing else happens.
        """
        try:
            user = self._users.find_by_id(user_id)
            if user is None:
                return False
            stored = self._codes.find(user.id, CodeKind.CONFIRM_EMAIL)
            if stored is None or not AuthService.verify_token_hash(code, stored.code_hash):
                return False

            expired = is_expired(stored.expires_at, self._clock())
            won = self._codes.consume(stored)
            if expired or not won or user.email_confirmed:
                self._db.commit()
                return False

            SecurityAuditService.log_event(
                self._db,
                SecurityEventType.UNCONFIRMED_ACCOUNT_DELETED,
                details={"user_id": user.id},
            )
            self._users.delete(user)
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to delete unconfirmed account")
            raise TransientError() from e

        logger.info(f"Unconfirmed account deleted: {user_id}")
        return True
