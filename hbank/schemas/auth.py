"""Schemas for authentication endpoints."""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator


def _validate_password_strength(v: str) -> str:
    """Shared password validation logic."""
    errors = []
    if not re.search(r"[a-z]", v):
        errors.append("lowercase letter")
    if not re.search(r"[A-Z]", v):
        errors.append("uppercase letter")
    if not re.search(r"\d", v):
        errors.append("number")

    if errors:
        raise ValueError(f"Password must contain at least one: {', '.join(errors)}")
    return v


class UserRegister(BaseModel):
    """Schema for user registration."""

    email: EmailStr
    name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=8, max_length=100)
    captcha_token: str = ""

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return _validate_password_strength(v)


class RegisterResponse(BaseModel):
    """Schema for registration response."""

    user_id: str
    message: str


class UserLogin(BaseModel):
    """Schema for user login."""

    email: str
    password: str


class TwoFactorLogin(BaseModel):
    """Schema for redeeming a login token with a second factor."""

    login_token: str
    otp_code: str | None = None
    recovery_code: str | None = None


class UserInfo(BaseModel):
    """Schema for user info in auth responses."""

    id: str
    email: str
    name: str
    email_confirmed: bool
    two_factor_enabled: bool
    profile_picture_id: str

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    """Schema for token response."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserInfo


class TwoFactorRequiredResponse(BaseModel):
    """Schema for the login response of accounts with two-factor authentication."""

    two_factor_required: bool = True
    login_token: str


class TokenRefresh(BaseModel):
    """Schema for token refresh."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Schema for logout."""

    refresh_token: str
    all_devices: bool = False


class MessageResponse(BaseModel):
    """Schema for simple message response."""

    message: str


class ConfirmEmailRequest(BaseModel):
    """Schema for email confirmation."""

    email: str
    code: str


class DeleteUnconfirmedRequest(BaseModel):
    """Schema for deleting an unconfirmed account with its confirmation code."""

    code: str


class ChangePasswordRequest(BaseModel):
    """Schema for changing password while logged in."""

    current_password: str
    new_password: str = Field(min_length=8, max_length=100)

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return _validate_password_strength(v)


class ForgotPasswordRequest(BaseModel):
    """Schema for requesting password reset."""

    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Schema for resetting password with a code."""

    email: str
    code: str
    new_password: str = Field(min_length=8, max_length=100)
    otp_code: str | None = None
    recovery_code: str | None = None

    @field_validator("new_password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        return _validate_password_strength(v)


class RequestChangeEmailRequest(BaseModel):
    """Schema for requesting an email change."""

    password: str
    new_email: EmailStr


class ChangeEmailRequest(BaseModel):
    """Schema for completing an email change."""

    code: str


class DeleteAccountRequest(BaseModel):
    """Schema for deleting the signed-in account."""

    password: str
    otp_code: str | None = None
    recovery_code: str | None = None
