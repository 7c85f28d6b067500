"""Schemas for two-factor endpoints."""

from pydantic import BaseModel, Field


class OtpCredentials(BaseModel):
    """Email + password re-proof for enrollment endpoints."""

    email: str
    password: str


class PasswordConfirm(BaseModel):
    """Password re-proof for a signed-in user."""

    password: str


class OtpKeyResponse(BaseModel):
    """Manual-entry key for authenticator apps."""

    otp_key: str


class OtpVerifyRequest(BaseModel):
    """Request to verify a TOTP code."""

    email: str
    code: str = Field(min_length=6, max_length=6)


class OtpVerifyResponse(BaseModel):
    """Result of a successful TOTP verification.

    ``recovery_codes`` is only present when this verification enabled
    two-factor authentication.
    """

    message: str
    recovery_codes: list[str] | None = None


class RecoveryCodesResponse(BaseModel):
    """Response with new recovery codes."""

    recovery_codes: list[str]
