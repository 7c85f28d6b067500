"""Recovery code data access layer."""

from sqlalchemy import delete
from sqlalchemy.orm import Session

from hbank.models import RecoveryCode


class RecoveryCodeRepository:
    """Data access for two-factor recovery codes."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def replace_batch(self, user_id: str, code_hashes: list[str]) -> None:
        """Delete every existing code for the user and store a new batch."""
        self.delete_for_user(user_id)
        for code_hash in code_hashes:
            self._db.add(RecoveryCode(user_id=user_id, code_hash=code_hash))
        self._db.flush()

    def list_for_user(self, user_id: str) -> list[RecoveryCode]:
        return self._db.query(RecoveryCode).filter(RecoveryCode.user_id == user_id).all()

    def count_for_user(self, user_id: str) -> int:
        return self._db.query(RecoveryCode).filter(RecoveryCode.user_id == user_id).count()

    def consume(self, code: RecoveryCode) -> bool:
        """Delete one code. Returns False if another request already did."""
        result = self._db.execute(
            delete(RecoveryCode)
            .where(RecoveryCode.id == code.id)
            .execution_options(synchronize_session=False)
        )
        if code in self._db:
            self._db.expunge(code)
        return result.rowcount == 1

    def delete_for_user(self, user_id: str) -> int:
        result = self._db.execute(
            delete(RecoveryCode)
            .where(RecoveryCode.user_id == user_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount
