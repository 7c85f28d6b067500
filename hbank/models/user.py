"""User model for authentication."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from hbank.database import Base

if TYPE_CHECKING:
    from hbank.models.auth_token import AuthToken
    from hbank.models.recovery_code import RecoveryCode
    from hbank.models.single_use_code import SingleUseCode


class User(Base):
    """Account identity.

    ``otp_secret_encrypted`` is only set once a pending secret has been
    verified; until then the secret lives in ``pending_otp_secret_encrypted``.
    ``token_key`` is embedded in access tokens and rotated to invalidate them.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    password_hash: Mapped[str] = mapped_column(String(255))
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    otp_secret_encrypted: Mapped[str | None] = mapped_column(String(255))
    pending_otp_secret_encrypted: Mapped[str | None] = mapped_column(String(255))
    token_key: Mapped[str] = mapped_column(String(64))
    profile_picture_id: Mapped[str] = mapped_column(
        String(36), default=lambda: str(uuid4())
    )
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    codes: Mapped[list["SingleUseCode"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    tokens: Mapped[list["AuthToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    recovery_codes: Mapped[list["RecoveryCode"]] = relationship(
        back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
