"""Password hashing, token hashing and JWT access tokens."""

import base64
import hashlib
import hmac
import logging
from datetime import UTC, datetime, timedelta
from functools import lru_cache

import bcrypt
import jwt

from hbank.config import Settings
from hbank.models import User
from hbank.services.exceptions import InvalidCredentialsError

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    """Encode a password for bcrypt, pre-hashing inputs bcrypt would truncate."""
    encoded = password.encode("utf-8")
    if len(encoded) > _BCRYPT_MAX_BYTES:
        encoded = base64.b64encode(hashlib.sha256(encoded).digest())
    return encoded


@lru_cache(maxsize=8)
def _dummy_hash(rounds: int) -> bytes:
    return bcrypt.hashpw(b"hbank-dummy-password", bcrypt.gensalt(rounds=rounds))


class AuthService:
    """Service for credential hashing and access token operations."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        hashed = bcrypt.hashpw(_password_bytes(password), salt)
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify a password against its hash."""
        try:
            return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
        except ValueError as e:
            logger.error(f"Password verification error: {e}")
            return False

    def dummy_verify(self, password: str) -> bool:
        """Spend the cost of a real verification when there is no user to check against.

        Keeps "unknown email" and "wrong password" indistinguishable by timing.
        """
        bcrypt.checkpw(_password_bytes(password), _dummy_hash(self._settings.bcrypt_rounds))
        return False

    def require_password(self, user: User | None, password: str) -> User:
        """Step-up check: return the user if ``password`` is theirs.

        Raises InvalidCredentialsError for an unknown user and a wrong password
        alike, after the same amount of hashing work.
        """
        if user is None:
            self.dummy_verify(password)
            logger.debug("Password check for unknown user")
            raise InvalidCredentialsError()
        if not self.verify_password(password, user.password_hash):
            logger.debug(f"Wrong password for user: {user.id}")
            raise InvalidCredentialsError()
        return user

    @staticmethod
    def hash_token(token: str) -> str:
        """Hash a high-entropy token or code using SHA-256."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @staticmethod
    def verify_token_hash(token: str, hashed: str) -> bool:
        """Verify a token against its SHA-256 hash in constant time."""
        return hmac.compare_digest(AuthService.hash_token(token), hashed)

    def create_access_token(
        self,
        user_id: str,
        token_key: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a JWT access token bound to the user's current token key."""
        if expires_delta is None:
            expires_delta = timedelta(minutes=self._settings.access_token_expire_minutes)

        now = datetime.now(UTC)
        payload = {
            "sub": user_id,
            "tk": token_key,
            "exp": now + expires_delta,
            "iat": now,
            "type": "access",
        }
        return jwt.encode(
            payload, self._settings.jwt_secret_key, algorithm=self._settings.jwt_algorithm
        )

    def decode_access_token(self, token: str) -> dict | None:
        """Decode and validate a JWT access token."""
        try:
            payload = jwt.decode(
                token,
                self._settings.jwt_secret_key,
                algorithms=[self._settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid token: {e}")
            return None

        if payload.get("type") != "access":
            logger.debug("Token is not an access token")
            return None
        return payload
