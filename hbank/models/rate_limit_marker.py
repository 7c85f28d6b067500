"""Per-email rate limit marker model."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hbank.database import Base


class RateLimitKind:
    """Constants for rate-limited actions."""

    CONFIRM_EMAIL = "confirm_email"
    FORGOT_PASSWORD = "forgot_password"


class RateLimitMarker(Base):
    """Last time an email-bound action was performed for an address.

    Keyed by email rather than user so that the limit applies whether or not
    an account exists.
    """

    __tablename__ = "rate_limit_markers"
    __table_args__ = (UniqueConstraint("kind", "email", name="uq_rate_limit_markers_kind_email"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    kind: Mapped[str] = mapped_column(String(20))
    email: Mapped[str] = mapped_column(String(255), index=True)
    last_sent: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"<RateLimitMarker(kind={self.kind}, email='{self.email}')>"
