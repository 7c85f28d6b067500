"""Login, refresh token rotation with reuse detection, logout.

Credential states: Issued -> Active -> Rotated (used) | Revoked (deleted).
"""

import hmac
import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hbank.config import Settings
from hbank.models import AuthToken, TokenKind, User
from hbank.repositories import TokenRepository, UserRepository
from hbank.services import secret_generator
from hbank.services.auth_service import AuthService
from hbank.services.clock import Clock, is_expired, utcnow
from hbank.services.exceptions import (
    EmailNotConfirmedError,
    InvalidCredentialsError,
    TransientError,
    store_errors_as_transient,
)
from hbank.services.security_audit_service import SecurityAuditService, SecurityEventType
from hbank.services.two_factor_service import TwoFactorService

logger = logging.getLogger(__name__)

TOKEN_KEY_BYTES = 16


@dataclass(frozen=True)
class SessionTokens:
    """Plaintext credentials handed out once; only their hashes are stored."""

    access_token: str
    refresh_token: str
    user: User


@dataclass(frozen=True)
class TwoFactorChallenge:
    """First factor passed; ``login_token`` must be redeemed with a second factor."""

    login_token: str


def new_token_key() -> str:
    return secret_generator.random_hex(TOKEN_KEY_BYTES)


class SessionService:
    """Issues and rotates session credentials for a user."""

    def __init__(self, db: Session, settings: Settings, clock: Clock = utcnow) -> None:
        self._db = db
        self._settings = settings
        self._clock = clock
        self._auth = AuthService(settings)
        self._users = UserRepository(db)
        self._tokens = TokenRepository(db)
        self._two_factor = TwoFactorService(db, settings)

    def _commit(self) -> None:
        try:
            self._db.commit()
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception("Failed to persist session state")
            raise TransientError() from e

    def _issue_token(self, user_id: str, kind: str, lifetime: timedelta, family_id: str) -> str:
        token = secret_generator.random_code(self._settings.token_length)
        self._tokens.add(
            user_id=user_id,
            kind=kind,
            token_hash=AuthService.hash_token(token),
            family_id=family_id,
            expires_at=self._clock() + lifetime,
        )
        return token

    def _issue_session(self, user: User, family_id: str | None = None) -> SessionTokens:
        refresh_token = self._issue_token(
            user.id,
            TokenKind.REFRESH,
            timedelta(days=self._settings.refresh_token_expire_days),
            family_id or str(uuid4()),
        )
        access_token = self._auth.create_access_token(user.id, user.token_key)
        return SessionTokens(access_token=access_token, refresh_token=refresh_token, user=user)

    def _lookup(self, token: str, kind: str) -> AuthToken | None:
        token_hash = AuthService.hash_token(token)
        stored = self._tokens.find_by_hash(token_hash, kind)
        if stored is None or not hmac.compare_digest(stored.token_hash, token_hash):
            return None
        return stored

    @store_errors_as_transient
    def login(self, email: str, password: str) -> SessionTokens | TwoFactorChallenge:
        """Check the password and start a session.

        Accounts with two-factor authentication get a short-lived single-use
        login token instead of a session.

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            EmailNotConfirmedError: password correct, email not confirmed
        """
        user = self._users.find_by_email(email.strip())
        try:
            self._auth.require_password(user, password)
        except InvalidCredentialsError:
            SecurityAuditService.log_event(
                self._db,
                SecurityEventType.LOGIN_FAILED,
                user_id=user.id if user else None,
                details={"reason": "invalid_password" if user else "user_not_found"},
            )
            self._commit()
            raise

        if not user.email_confirmed:
            SecurityAuditService.log_event(
                self._db, SecurityEventType.LOGIN_BLOCKED_UNCONFIRMED, user_id=user.id
            )
            self._commit()
            raise EmailNotConfirmedError()

        if user.two_factor_enabled:
            login_token = self._issue_token(
                user.id,
                TokenKind.LOGIN,
                timedelta(minutes=self._settings.login_token_expire_minutes),
                str(uuid4()),
            )
            SecurityAuditService.log_event(
                self._db, SecurityEventType.LOGIN_TWO_FACTOR_REQUIRED, user_id=user.id
            )
            self._commit()
            logger.info(f"Two-factor required for user: {user.email}")
            return TwoFactorChallenge(login_token=login_token)

        tokens = self._issue_session(user)
        SecurityAuditService.log_event(self._db, SecurityEventType.LOGIN_SUCCESS, user_id=user.id)
        self._commit()
        logger.info(f"User logged in: {user.email}")
        return tokens

    @store_errors_as_transient
    def complete_login(
        self,
        login_token: str,
        otp_code: str | None = None,
        recovery_code: str | None = None,
    ) -> SessionTokens:
        """Redeem a login token with a TOTP code or a recovery code.

        A wrong second factor leaves the login token usable until it expires.
        """
        stored = self._lookup(login_token, TokenKind.LOGIN)
        if stored is None:
            raise InvalidCredentialsError()

        if is_expired(stored.expires_at, self._clock()):
            self._tokens.consume(stored)
            self._commit()
            raise InvalidCredentialsError()

        user = self._users.find_by_id(stored.user_id)
        if user is None:
            raise InvalidCredentialsError()

        if not self._two_factor.verify_second_factor(user, otp_code, recovery_code):
            self._commit()
            raise InvalidCredentialsError()

        if not self._tokens.consume(stored):
            # Another request redeemed the same login token first
            self._db.rollback()
            raise InvalidCredentialsError()

        tokens = self._issue_session(user)
        SecurityAuditService.log_event(
            self._db,
            SecurityEventType.LOGIN_SUCCESS,
            user_id=user.id,
            details={"second_factor": "recovery_code" if recovery_code and not otp_code else "otp"},
        )
        self._commit()
        logger.info(f"User logged in with second factor: {user.email}")
        return tokens

    @store_errors_as_transient
    def refresh(self, refresh_token: str) -> SessionTokens:
        """Rotate a refresh token.

        Presenting a token that was already rotated is treated as theft: every
        token of the user is revoked and outstanding access tokens stop
        working. An expired token, used or not, is rejected and removed
        without revoking anything else.
        """
        stored = self._lookup(refresh_token, TokenKind.REFRESH)
        if stored is None:
            raise InvalidCredentialsError()

        if is_expired(stored.expires_at, self._clock()):
            self._tokens.consume(stored)
            self._commit()
            raise InvalidCredentialsError()

        user = self._users.find_by_id(stored.user_id)
        if user is None:
            raise InvalidCredentialsError()

        if stored.used:
            self._revoke_for_reuse(user)
            raise InvalidCredentialsError()

        if not self._tokens.mark_used(stored):
            # Lost the race against a concurrent refresh of the same token
            self._revoke_for_reuse(user)
            raise InvalidCredentialsError()

        tokens = self._issue_session(user, family_id=stored.family_id)
        self._commit()
        return tokens

    def _revoke_for_reuse(self, user: User) -> None:
        logger.warning(f"Refresh token reuse detected for user: {user.id}")
        self.revoke_all(user)
        SecurityAuditService.log_event(
            self._db, SecurityEventType.TOKEN_REUSE_DETECTED, user_id=user.id
        )
        self._commit()

    @store_errors_as_transient
    def logout(self, refresh_token: str, all_devices: bool = False) -> None:
        """Revoke the presented token's device chain, or every session of the user."""
        stored = self._lookup(refresh_token, TokenKind.REFRESH)
        if stored is None:
            return

        user_id = stored.user_id
        if all_devices:
            user = self._users.find_by_id(user_id)
            if user is not None:
                self.revoke_all(user)
        else:
            self._tokens.delete_family(stored.family_id)

        SecurityAuditService.log_event(
            self._db,
            SecurityEventType.LOGOUT,
            user_id=user_id,
            details={"all_devices": all_devices},
        )
        self._commit()

    @store_errors_as_transient
    def revoke_all(self, user: User) -> None:
        """Delete every refresh/login token and invalidate issued access tokens.

        Does not commit.
        """
        revoked = self._tokens.delete_for_user(user.id)
        user.token_key = new_token_key()
        logger.info(f"Revoked {revoked} tokens for user: {user.id}")

    @store_errors_as_transient
    def authenticate(self, access_token: str) -> User:
        """Resolve an access token to its user."""
        payload = self._auth.decode_access_token(access_token)
        if not payload:
            raise InvalidCredentialsError("Invalid or expired token")

        user = self._users.find_by_id(payload.get("sub", ""))
        if user is None:
            raise InvalidCredentialsError("Invalid or expired token")

        if not hmac.compare_digest(str(payload.get("tk", "")), user.token_key):
            raise InvalidCredentialsError("Invalid or expired token")
        return user
