"""Refresh/login token data access layer."""

import logging
from datetime import datetime

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from hbank.models import AuthToken

logger = logging.getLogger(__name__)


class TokenRepository:
    """Data access for opaque bearer tokens, looked up by SHA-256 hash."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def add(
        self,
        user_id: str,
        kind: str,
        token_hash: str,
        family_id: str,
        expires_at: datetime,
    ) -> AuthToken:
        """Store a newly issued token."""
        token = AuthToken(
            user_id=user_id,
            kind=kind,
            token_hash=token_hash,
            family_id=family_id,
            expires_at=expires_at,
            used=False,
        )
        self._db.add(token)
        self._db.flush()
        return token

    def find_by_hash(self, token_hash: str, kind: str) -> AuthToken | None:
        """Find a token of the given kind by its hash."""
        return (
            self._db.query(AuthToken)
            .filter(AuthToken.token_hash == token_hash, AuthToken.kind == kind)
            .first()
        )

    def mark_used(self, token: AuthToken) -> bool:
        """Compare-and-set ``used``. Returns False if it was already set."""
        result = self._db.execute(
            update(AuthToken)
            .where(AuthToken.id == token.id, AuthToken.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        won = result.rowcount == 1
        if won:
            token.used = True
        return won

    def consume(self, token: AuthToken) -> bool:
        """Delete a single token. Returns False if another request already did."""
        result = self._db.execute(
            delete(AuthToken)
            .where(AuthToken.id == token.id)
            .execution_options(synchronize_session=False)
        )
        if token in self._db:
            self._db.expunge(token)
        return result.rowcount == 1

    def delete_family(self, family_id: str) -> int:
        """Delete every token issued from one login."""
        result = self._db.execute(
            delete(AuthToken)
            .where(AuthToken.family_id == family_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete_for_user(self, user_id: str, kind: str | None = None) -> int:
        """Delete a user's tokens (of one kind, or all)."""
        stmt = delete(AuthToken).where(AuthToken.user_id == user_id)
        if kind is not None:
            stmt = stmt.where(AuthToken.kind == kind)
        result = self._db.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount

    def count_for_user(self, user_id: str) -> int:
        """Count a user's stored tokens (used and unused)."""
        return self._db.query(AuthToken).filter(AuthToken.user_id == user_id).count()
