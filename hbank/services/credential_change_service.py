"""Password reset, password change, email change and account deletion.

Each completed change revokes every refresh/login token of the user and
rotates the token key, since the credential the sessions were based on
changed.
"""

import logging
from datetime import timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hbank.config import Settings
from hbank.models import CodeKind, RateLimitKind, SingleUseCode, User
from hbank.repositories import CodeRepository, RateLimitRepository, UserRepository
from hbank.services import secret_generator
from hbank.services.auth_service import AuthService
from hbank.services.clock import Clock, is_expired, utcnow
from hbank.services.email_service import EmailService
from hbank.services.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    RateLimitedError,
    TransientError,
    store_errors_as_transient,
)
from hbank.services.security_audit_service import SecurityAuditService, SecurityEventType
from hbank.services.session_service import SessionService
from hbank.services.two_factor_service import TwoFactorService

logger = logging.getLogger(__name__)


class CredentialChangeService:
    """Flows that replace a user's password hash or email address, or remove the account."""

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
        self._auth = AuthService(settings)
        self._users = UserRepository(db)
        self._codes = CodeRepository(db)
        self._rate_limits = RateLimitRepository(db)
        self._sessions = SessionService(db, settings, clock)
        self._two_factor = TwoFactorService(db, settings)

    def _commit(self) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to persist credential change")
            raise TransientError() from e

    def _issue_code(self, user: User, kind: str, length: int, payload: str | None = None) -> str:
        code = secret_generator.random_code(length)
        self._codes.replace(
            user.id,
            kind,
            AuthService.hash_token(code),
            self._clock() + timedelta(minutes=self._settings.email_code_expire_minutes),
            payload=payload,
        )
        return code

    def _match_code(self, user: User, kind: str, code: str) -> SingleUseCode | None:
        """Return the outstanding code if it matches and is unexpired.

        A matching expired code is deleted on the way.
        """
        stored = self._codes.find(user.id, kind)
        if stored is None or not AuthService.verify_token_hash(code, stored.code_hash):
            return None
        if is_expired(stored.expires_at, self._clock()):
            self._codes.consume(stored)
            self._commit()
            return None
        return stored

    @store_errors_as_transient
    def forgot_password(self, email: str) -> None:
        """Mail a password reset code.

        Unknown and unconfirmed addresses return exactly like known ones.

        Raises:
            RateLimitedError: a reset was requested for this address within the timeout
        """
        email = email.strip().lower()
        window = timedelta(minutes=self._settings.forgot_password_timeout_minutes)
        acquired = self._rate_limits.try_acquire(
            RateLimitKind.FORGOT_PASSWORD, email, self._clock(), window
        )
        self._commit()
        if not acquired:
            raise RateLimitedError()

        user = self._users.find_by_email(email)
        if user is None or not user.email_confirmed:
            logger.info(f"Password reset requested for unknown or unconfirmed email: {email}")
            return

        code = self._issue_code(user, CodeKind.RESET_PASSWORD, self._settings.reset_code_length)
        SecurityAuditService.log_event(
            self._db, SecurityEventType.PASSWORD_RESET_REQUESTED, user_id=user.id
        )
        self._commit()

        self._email.send_password_reset_code(user.email, user.name, code)
        logger.info(f"Password reset code issued for user: {user.email}")

    @store_errors_as_transient
    def reset_password(
        self,
        email: str,
        code: str,
        new_password: str,
        otp_code: str | None = None,
        recovery_code: str | None = None,
    ) -> None:
        """Replace the password using a reset code.

        Accounts with two-factor authentication must also present a TOTP
        code or a recovery code.

        Raises:
            InvalidCredentialsError: any part of the proof is missing or wrong
        """
        user = self._users.find_by_email(email.strip())
        if user is None:
            raise InvalidCredentialsError()

        stored = self._match_code(user, CodeKind.RESET_PASSWORD, code)
        if stored is None:
            raise InvalidCredentialsError()

        if not self._two_factor.verify_second_factor(user, otp_code, recovery_code):
            self._commit()
            raise InvalidCredentialsError()

        if not self._codes.consume(stored):
            self._db.rollback()
            raise InvalidCredentialsError()

        user.password_hash = self._auth.hash_password(new_password)
        self._sessions.revoke_all(user)
        SecurityAuditService.log_event(
            self._db, SecurityEventType.PASSWORD_RESET_COMPLETED, user_id=user.id
        )
        self._commit()

        self._email.send_password_changed_notification(user.email, user.name)
        logger.info(f"Password reset for user: {user.email}")

    @store_errors_as_transient
    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """Replace the password of a signed-in user after re-checking the current one."""
        self._auth.require_password(user, current_password)

        user.password_hash = self._auth.hash_password(new_password)
        self._sessions.revoke_all(user)
        SecurityAuditService.log_event(self._db, SecurityEventType.PASSWORD_CHANGED, user_id=user.id)
        self._commit()

        self._email.send_password_changed_notification(user.email, user.name)
        logger.info(f"Password changed for user: {user.email}")

    @store_errors_as_transient
    def request_email_change(self, user: User, password: str, new_email: str) -> None:
        """Mail a code to ``new_email``; the address is stored with the code.

        Raises:
            InvalidCredentialsError: wrong password
            ConflictError: the new address already belongs to an account
        """
        self._auth.require_password(user, password)

        new_email = new_email.strip().lower()
        if self._users.email_taken(new_email):
            raise ConflictError("Email already registered")

        code = self._issue_code(
            user, CodeKind.CHANGE_EMAIL, self._settings.email_code_length, payload=new_email
        )
        SecurityAuditService.log_event(
            self._db,
            SecurityEventType.EMAIL_CHANGE_REQUESTED,
            user_id=user.id,
            details={"new_email": new_email},
        )
        self._commit()

        self._email.send_change_email_code(new_email, user.name, code)
        logger.info(f"Email change requested for user: {user.email}")

    @store_errors_as_transient
    def change_email(self, user: User, code: str) -> str:
        """Switch to the address carried by the matching change-email code.

        Returns the new address.

        Raises:
            InvalidCredentialsError: wrong, expired or already used code
            ConflictError: the address was taken after the code was issued
        """
        stored = self._match_code(user, CodeKind.CHANGE_EMAIL, code)
        if stored is None:
            raise InvalidCredentialsError()

        new_email = stored.payload
        if not self._codes.consume(stored) or not new_email:
            self._db.rollback()
            raise InvalidCredentialsError()

        if self._users.email_taken(new_email, exclude_user_id=user.id):
            self._commit()
            raise ConflictError("Email already registered")

        old_email = user.email
        user.email = new_email
        user.email_confirmed = True
        self._sessions.revoke_all(user)
        SecurityAuditService.log_event(
            self._db,
            SecurityEventType.EMAIL_CHANGED,
            user_id=user.id,
            details={"old_email": old_email, "new_email": new_email},
        )
        self._commit()

        logger.info(f"Email changed for user {user.id}: {old_email} -> {new_email}")
        return new_email

    @store_errors_as_transient
    def delete_account(
        self,
        user: User,
        password: str,
        otp_code: str | None = None,
        recovery_code: str | None = None,
    ) -> None:
        """Delete a signed-in user's account and everything it owns.

        Requires the password and, for accounts with two-factor
        authentication, a TOTP code or a recovery code.

        Raises:
            InvalidCredentialsError: wrong password or second factor
        """
        self._auth.require_password(user, password)

        if not self._two_factor.verify_second_factor(user, otp_code, recovery_code):
            self._commit()
            raise InvalidCredentialsError()

        user_id, email = user.id, user.email
        SecurityAuditService.log_event(
            self._db,
            SecurityEventType.ACCOUNT_DELETED,
            details={"user_id": user_id},
        )
        self._sessions.revoke_all(user)
        self._users.delete(user)
        self._commit()

        logger.info(f"Account deleted: {email}")
