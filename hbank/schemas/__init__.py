"""Pydantic schemas for API validation."""

from hbank.schemas.auth import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    ConfirmEmailRequest,
    DeleteAccountRequest,
    DeleteUnconfirmedRequest,
    ForgotPasswordRequest,
    LogoutRequest,
    MessageResponse,
    RegisterResponse,
    RequestChangeEmailRequest,
    ResetPasswordRequest,
    TokenRefresh,
    TokenResponse,
    TwoFactorLogin,
    TwoFactorRequiredResponse,
    UserInfo,
    UserLogin,
    UserRegister,
)
from hbank.schemas.two_factor import (
    OtpCredentials,
    OtpKeyResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
    PasswordConfirm,
    RecoveryCodesResponse,
)

__all__ = [
    "ChangeEmailRequest",
    "ChangePasswordRequest",
    "ConfirmEmailRequest",
    "DeleteAccountRequest",
    "DeleteUnconfirmedRequest",
    "ForgotPasswordRequest",
    "LogoutRequest",
    "MessageResponse",
    "OtpCredentials",
    "OtpKeyResponse",
    "OtpVerifyRequest",
    "OtpVerifyResponse",
    "PasswordConfirm",
    "RecoveryCodesResponse",
    "RegisterResponse",
    "RequestChangeEmailRequest",
    "ResetPasswordRequest",
    "TokenRefresh",
    "TokenResponse",
    "TwoFactorLogin",
    "TwoFactorRequiredResponse",
    "UserInfo",
    "UserLogin",
    "UserRegister",
]
