"""Single-use code model (email confirmation, password reset, email change)."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from hbank.database import Base

if TYPE_CHECKING:
    from hbank.models.user import User


class CodeKind:
    """Constants for single-use code kinds."""

    CONFIRM_EMAIL = "confirm_email"
    RESET_PASSWORD = "reset_password"
    CHANGE_EMAIL = "change_email"


class SingleUseCode(Base):
    """Hashed, expiring code authorizing exactly one state transition."""

    __tablename__ = "single_use_codes"
    __table_args__ = (UniqueConstraint("user_id", "kind", name="uq_single_use_codes_user_kind"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    kind: Mapped[str] = mapped_column(String(20))
    code_hash: Mapped[str] = mapped_column(String(64))  # SHA-256 hex
    payload: Mapped[str | None] = mapped_column(String(255))  # new email for change_email
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    user: Mapped["User"] = relationship(back_populates="codes")

    def __repr__(self) -> str:
        return f"<SingleUseCode(id={self.id}, user_id={self.user_id}, kind={self.kind})>"
