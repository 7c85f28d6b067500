"""Two-factor (TOTP) enrollment, verification and recovery codes."""

import hmac
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hbank.config import Settings
from hbank.models import User
from hbank.repositories import RecoveryCodeRepository, UserRepository
from hbank.services.auth_service import AuthService
from hbank.services.exceptions import (
    ConflictError,
    InvalidCredentialsError,
    NotFoundError,
    TransientError,
    store_errors_as_transient,
)
from hbank.services.mfa_service import MfaService, OtpEnrollment
from hbank.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)


class TwoFactorService:
    """Enrollment state lives on the user row.

    - ``pending_otp_secret_encrypted``: provisioned, not yet proven by a code
    - ``otp_secret_encrypted`` + ``two_factor_enabled``: active

    A pending secret only replaces the active one after a valid code for it.
    """

    def __init__(self, db: Session, settings: Settings) -> None:
        self._db = db
        self._settings = settings
        self._auth = AuthService(settings)
        self._mfa = MfaService(settings)
        self._users = UserRepository(db)
        self._recovery_codes = RecoveryCodeRepository(db)

    def _commit(self) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to persist two-factor state")
            raise TransientError() from e

    def _current_enrollment(self, user: User) -> OtpEnrollment | None:
        encrypted = user.pending_otp_secret_encrypted or user.otp_secret_encrypted
        if not encrypted:
            return None
        return self._mfa.enrollment_for(self._mfa.decrypt_secret(encrypted), user.email)

    def _provision_pending(self, user: User) -> OtpEnrollment:
        enrollment = self._mfa.provision(user.email)
        user.pending_otp_secret_encrypted = self._mfa.encrypt_secret(enrollment.secret)
        self._commit()
        return enrollment

    @store_errors_as_transient
    def activate_otp(self, email: str, password: str) -> bytes:
        """Start TOTP enrollment; returns the QR code PNG.

        Requires the account password. If two-factor is already enabled the
        existing enrollment is returned unchanged, so an already scanned
        secret keeps working.
        """
        user = self._auth.require_password(self._users.find_by_email(email.strip()), password)

        if user.two_factor_enabled and user.otp_secret_encrypted:
            secret = self._mfa.decrypt_secret(user.otp_secret_encrypted)
            return self._mfa.enrollment_for(secret, user.email).qr_png

        enrollment = self._provision_pending(user)
        logger.info(f"TOTP enrollment started for user: {user.email}")
        return enrollment.qr_png

    @store_errors_as_transient
    def get_otp_qr_code(self, email: str, password: str) -> bytes:
        """Re-deliver the current enrollment as a QR code PNG."""
        user = self._auth.require_password(self._users.find_by_email(email.strip()), password)
        enrollment = self._current_enrollment(user)
        if enrollment is None:
            raise NotFoundError("Two-factor authentication has not been activated")
        return enrollment.qr_png

    @store_errors_as_transient
    def get_otp_key(self, email: str, password: str) -> str:
        """Re-deliver the current enrollment as a manual-entry key."""
        user = self._auth.require_password(self._users.find_by_email(email.strip()), password)
        enrollment = self._current_enrollment(user)
        if enrollment is None:
            raise NotFoundError("Two-factor authentication has not been activated")
        return enrollment.secret

    @store_errors_as_transient
    def verify_otp(self, email: str, code: str) -> list[str] | None:
        """Check a TOTP code, promoting a pending secret on success.

        Returns the first batch of recovery codes when this verification
        enabled two-factor authentication, otherwise None.

        Raises:
            InvalidCredentialsError: unknown user, nothing enrolled, or wrong code
        """
        user = self._users.find_by_email(email.strip())
        if user is None:
            logger.debug("OTP verification for unknown email")
            raise InvalidCredentialsError()

        if user.pending_otp_secret_encrypted:
            secret = self._mfa.decrypt_secret(user.pending_otp_secret_encrypted)
            if not self._mfa.verify_totp(secret, code):
                self._record_failure(user, "pending")
                raise InvalidCredentialsError()

            first_activation = not user.two_factor_enabled
            user.otp_secret_encrypted = user.pending_otp_secret_encrypted
            user.pending_otp_secret_encrypted = None
            user.two_factor_enabled = True

            recovery_codes = None
            if first_activation:
                recovery_codes = self._store_recovery_codes(user)
                SecurityAuditService.log_event(
                    self._db, SecurityEventType.MFA_ENABLED, user_id=user.id
                )
            else:
                SecurityAuditService.log_event(
                    self._db, SecurityEventType.MFA_SECRET_ROTATED, user_id=user.id
                )
            self._commit()
            logger.info(f"TOTP secret verified for user: {user.email}")
            return recovery_codes

        if user.two_factor_enabled and self.verify_totp_for(user, code):
            return None

        self._record_failure(user, "active")
        raise InvalidCredentialsError()

    @store_errors_as_transient
    def new_otp(self, user: User, password: str) -> bytes:
        """Provision a replacement secret; the active one stays valid until it is verified."""
        self._auth.require_password(user, password)
        enrollment = self._provision_pending(user)
        logger.info(f"New TOTP secret provisioned for user: {user.email}")
        return enrollment.qr_png

    @store_errors_as_transient
    def new_recovery_codes(self, user: User, password: str) -> list[str]:
        """Replace the whole recovery code batch. Old codes stop working immediately."""
        self._auth.require_password(user, password)
        if not user.two_factor_enabled:
            raise ConflictError("Two-factor authentication is not enabled")

        codes = self._store_recovery_codes(user)
        SecurityAuditService.log_event(
            self._db, SecurityEventType.RECOVERY_CODES_REGENERATED, user_id=user.id
        )
        self._commit()
        logger.info(f"Recovery codes regenerated for user: {user.email}")
        return codes

    def _store_recovery_codes(self, user: User) -> list[str]:
        codes = self._mfa.generate_recovery_codes()
        self._recovery_codes.replace_batch(user.id, [AuthService.hash_token(c) for c in codes])
        return codes

    @store_errors_as_transient
    def verify_recovery_code(self, user_id: str, code: str) -> bool:
        """Consume one matching recovery code. The rest of the batch stays valid.

        Flushes but does not commit; the caller owns the transaction.
        """
        if not code:
            return False
        code_hash = AuthService.hash_token(code)
        match = None
        for stored in self._recovery_codes.list_for_user(user_id):
            if hmac.compare_digest(code_hash, stored.code_hash):
                match = stored
        if match is None:
            return False
        return self._recovery_codes.consume(match)

    def verify_totp_for(self, user: User, code: str | None) -> bool:
        """Check a code against the user's active secret."""
        if not code or not user.two_factor_enabled or not user.otp_secret_encrypted:
            return False
        return self._mfa.verify_totp(self._mfa.decrypt_secret(user.otp_secret_encrypted), code)

    @store_errors_as_transient
    def verify_second_factor(
        self,
        user: User,
        otp_code: str | None = None,
        recovery_code: str | None = None,
    ) -> bool:
        """Second-factor proof for login and password reset.

        Always passes for accounts without two-factor authentication. A
        recovery code is consumed on success; the caller commits.
        """
        if not user.two_factor_enabled:
            return True
        if self.verify_totp_for(user, otp_code):
            return True
        if recovery_code and self.verify_recovery_code(user.id, recovery_code):
            SecurityAuditService.log_event(
                self._db, SecurityEventType.RECOVERY_CODE_USED, user_id=user.id
            )
            return True
        SecurityAuditService.log_event(self._db, SecurityEventType.MFA_FAILED, user_id=user.id)
        return False

    def _record_failure(self, user: User, stage: str) -> None:
        SecurityAuditService.log_event(
            self._db, SecurityEventType.MFA_FAILED, user_id=user.id, details={"stage": stage}
        )
        self._commit()
