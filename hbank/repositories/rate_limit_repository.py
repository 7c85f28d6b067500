"""Per-email rate limit marker data access layer."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hbank.models import RateLimitMarker

logger = logging.getLogger(__name__)


class RateLimitRepository:
    """Monotonic last-sent markers keyed by (kind, email)."""

    def __init__(self, db: Session) -> None:
        self._db = db

    def try_acquire(self, kind: str, email: str, now: datetime, window: timedelta) -> bool:
        """Advance the marker to ``now`` if ``window`` has elapsed since it was last set.

        Returns True if the caller may proceed. The advance is a conditional
        UPDATE, so of several concurrent callers at most one wins. Must run
        first in its unit of work: a lost insert race rolls back the session.
        """
        result = self._db.execute(
            update(RateLimitMarker)
            .where(
                RateLimitMarker.kind == kind,
                RateLimitMarker.email == email,
                RateLimitMarker.last_sent <= now - window,
            )
            .values(last_sent=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return True

        existing = (
            self._db.query(RateLimitMarker.id)
            .filter(RateLimitMarker.kind == kind, RateLimitMarker.email == email)
            .first()
        )
        if existing is not None:
            return False

        self._db.add(RateLimitMarker(kind=kind, email=email, last_sent=now))
        try:
            self._db.flush()
        except IntegrityError:
            self._db.rollback()
            logger.debug(f"Lost rate limit insert race for {kind}:{email}")
            return False
        return True
