"""Single-use code data access layer."""

import logging
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.orm import Session

from hbank.models import SingleUseCode

logger = logging.getLogger(__name__)


class CodeRepository:
    """Data access for confirm-email, reset-password and change-email codes.

    At most one code per (user, kind) is outstanding: ``replace`` deletes the
    previous one before inserting. ``consume`` is a compare-and-delete whose
    result tells the caller whether it won.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    def find(self, user_id: str, kind: str) -> SingleUseCode | None:
        """Find the outstanding code of a kind for a user."""
        return (
            self._db.query(SingleUseCode)
            .filter(SingleUseCode.user_id == user_id, SingleUseCode.kind == kind)
            .first()
        )

    def replace(
        self,
        user_id: str,
        kind: str,
        code_hash: str,
        expires_at: datetime,
        payload: str | None = None,
    ) -> SingleUseCode:
        """Invalidate any outstanding code of this kind and store a new one."""
        self.delete_for_user(user_id, kind)
        code = SingleUseCode(
            user_id=user_id,
            kind=kind,
            code_hash=code_hash,
            expires_at=expires_at,
            payload=payload,
        )
        self._db.add(code)
        self._db.flush()
        return code

    def consume(self, code: SingleUseCode) -> bool:
        """Delete the code. Returns False if another request already did."""
        result = self._db.execute(
            delete(SingleUseCode)
            .where(SingleUseCode.id == code.id)
            .execution_options(synchronize_session=False)
        )
        if code in self._db:
            self._db.expunge(code)
        return result.rowcount == 1

    def delete_for_user(self, user_id: str, kind: str | None = None) -> int:
        """Delete a user's codes (of one kind, or all). Returns rows deleted."""
        stmt = delete(SingleUseCode).where(SingleUseCode.user_id == user_id)
        if kind is not None:
            stmt = stmt.where(SingleUseCode.kind == kind)
        result = self._db.execute(stmt.execution_options(synchronize_session="fetch"))
        return result.rowcount
