"""Typed failures raised by the auth flows.

Routers map each kind to one HTTP status in ``hbank.main``. Store errors
never reach callers verbatim; flows wrap them into ``TransientError``.
"""

import functools
import logging

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base exception for auth flow failures."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentialsError(AuthError):
    """Wrong password, or a wrong/expired/missing token or code.

    Raised wherever the caller must not learn which half of a check failed.
    """

    default_message = "Invalid credentials"


class NotFoundError(AuthError):
    """Entity absent where revealing that is acceptable."""

    default_message = "Not found"


class ConflictError(AuthError):
    """State conflict: email taken, already confirmed, already enabled."""

    default_message = "Conflict"


class EmailNotConfirmedError(AuthError):
    """Correct password, but the account's email is not confirmed yet."""

    default_message = "email_not_confirmed"


class RateLimitedError(AuthError):
    """Action attempted before its cooldown elapsed."""

    default_message = "Please wait before requesting another code"


class TransientError(AuthError):
    """A downstream dependency failed; safe to retry."""

    default_message = "Service temporarily unavailable"


class EntropyUnavailableError(RuntimeError):
    """The secure random source is unusable. Raised only at startup."""


def store_errors_as_transient(method):
    """Wrap a flow method so SQLAlchemy failures surface as ``TransientError``.

    The owning session (``self._db``) is rolled back first. Errors already in
    the taxonomy pass through untouched.
    """

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            self._db.rollback()
            logger.exception(f"Store failure in {method.__qualname__}")
            raise TransientError() from e

    return wrapper
