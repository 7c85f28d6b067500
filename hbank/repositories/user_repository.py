"""User data access layer."""

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hbank.models import User

from .exceptions import DuplicateError

logger = logging.getLogger(__name__)


class UserRepository:
    """Centralized user data access.

    Naming conventions:
    - find_* : Query that may return None
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def find_by_id(self, user_id: str) -> User | None:
        """Find user by primary key."""
        return self._db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> User | None:
        """Find user by email (case-insensitive)."""
        return self._db.query(User).filter(func.lower(User.email) == email.lower()).first()

    def email_taken(self, email: str, exclude_user_id: str | None = None) -> bool:
        """Check whether an email address belongs to any (other) account."""
        query = self._db.query(User.id).filter(func.lower(User.email) == email.lower())
        if exclude_user_id is not None:
            query = query.filter(User.id != exclude_user_id)
        return query.first() is not None

    def add(self, user: User) -> User:
        """Insert a new user. Raises DuplicateError if the email is taken."""
        self._db.add(user)
        try:
            self._db.flush()
        except IntegrityError as e:
            self._db.rollback()
            raise DuplicateError("User", "email", user.email) from e
        return user

    def delete(self, user: User) -> None:
        """Delete a user and (via cascade) everything it owns."""
        self._db.delete(user)
        self._db.flush()
