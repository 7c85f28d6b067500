"""Authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from hbank.dependencies.auth import get_current_user
from hbank.dependencies.services import (
    get_credential_change_service,
    get_email_confirmation_service,
    get_registration_service,
    get_session_service,
)
from hbank.models.user import User
from hbank.rate_limiter import limiter
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
from hbank.services.credential_change_service import CredentialChangeService
from hbank.services.email_confirmation_service import EmailConfirmationService
from hbank.services.registration_service import RegistrationService
from hbank.services.session_service import SessionService, SessionTokens, TwoFactorChallenge

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(tokens: SessionTokens) -> dict:
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "user": UserInfo.model_validate(tokens.user),
    }


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def register(
    request: Request,
    data: UserRegister,
    registration: RegistrationService = Depends(get_registration_service),
) -> dict:
    """Register a new user. The confirmation code is requested separately."""
    user_id = registration.register(data.email, data.name, data.password, data.captcha_token)
    return {
        "user_id": user_id,
        "message": "Registration successful. Request a confirmation code to verify your email.",
    }


@router.get("/confirm-email/{email}", response_model=MessageResponse)
@limiter.limit("5/minute")
def request_confirmation_code(
    request: Request,
    email: str,
    confirmation: EmailConfirmationService = Depends(get_email_confirmation_service),
) -> dict:
    """Send a confirmation code to the given address."""
    confirmation.request_code(email)
    return {"message": "Confirmation code sent"}


@router.post("/confirm-email", response_model=MessageResponse)
@limiter.limit("10/minute")
def confirm_email(
    request: Request,
    data: ConfirmEmailRequest,
    confirmation: EmailConfirmationService = Depends(get_email_confirmation_service),
) -> dict:
    """Confirm an email address with the code sent to it."""
    if not confirmation.verify_code(data.email, data.code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired confirmation code",
        )
    return {"message": "Email confirmed successfully"}


@router.post("/delete-unconfirmed/{user_id}", response_model=MessageResponse)
@limiter.limit("5/minute")
def delete_unconfirmed(
    request: Request,
    user_id: str,
    data: DeleteUnconfirmedRequest,
    confirmation: EmailConfirmationService = Depends(get_email_confirmation_service),
) -> dict:
    """Delete an account that was registered with your address but never confirmed."""
    if not confirmation.delete_unconfirmed_account(user_id, data.code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired confirmation code",
        )
    return {"message": "Account deleted"}


@router.post("/login", response_model=TokenResponse | TwoFactorRequiredResponse)
@limiter.limit("10/minute")
def login(
    request: Request,
    data: UserLogin,
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    """Login with email and password.

    Accounts with two-factor authentication receive a login token to redeem
    at ``/auth/login/two-factor``.
    """
    result = sessions.login(data.email, data.password)
    if isinstance(result, TwoFactorChallenge):
        return {"two_factor_required": True, "login_token": result.login_token}
    return _token_response(result)


@router.post("/login/two-factor", response_model=TokenResponse)
@limiter.limit("10/minute")
def login_two_factor(
    request: Request,
    data: TwoFactorLogin,
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    """Complete login with a TOTP code or a recovery code."""
    tokens = sessions.complete_login(data.login_token, data.otp_code, data.recovery_code)
    return _token_response(tokens)


@router.post("/refresh", response_model=TokenResponse)
@limiter.limit("30/minute")
def refresh_token(
    request: Request,
    data: TokenRefresh,
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    """Exchange a refresh token for a new access/refresh token pair."""
    return _token_response(sessions.refresh(data.refresh_token))


@router.post("/logout", response_model=MessageResponse)
def logout(
    data: LogoutRequest,
    sessions: SessionService = Depends(get_session_service),
) -> dict:
    """Revoke this device's session, or every session with ``all_devices``."""
    sessions.logout(data.refresh_token, all_devices=data.all_devices)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=UserInfo)
def get_me(current_user: User = Depends(get_current_user)) -> User:
    """Get current user info."""
    return current_user


@router.post("/change-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def change_password(
    request: Request,
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Change password. Signs out every session."""
    credentials.change_password(current_user, data.current_password, data.new_password)
    return {"message": "Password changed successfully. Please log in again."}


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit("3/minute")
def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Request a password reset code."""
    credentials.forgot_password(data.email)
    # Always return success to prevent email enumeration
    return {"message": "If the email exists, a password reset link has been sent"}


@router.post("/reset-password", response_model=MessageResponse)
@limiter.limit("5/minute")
def reset_password(
    request: Request,
    data: ResetPasswordRequest,
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Reset password using the emailed code (plus a second factor when enabled)."""
    credentials.reset_password(
        data.email, data.code, data.new_password, data.otp_code, data.recovery_code
    )
    return {"message": "Password reset successfully. Please log in."}


@router.post("/request-change-email", response_model=MessageResponse)
@limiter.limit("3/minute")
def request_change_email(
    request: Request,
    data: RequestChangeEmailRequest,
    current_user: User = Depends(get_current_user),
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Send a code to the new address."""
    credentials.request_email_change(current_user, data.password, data.new_email)
    return {"message": "Confirmation code sent to the new email address"}


@router.post("/change-email", response_model=MessageResponse)
@limiter.limit("5/minute")
def change_email(
    request: Request,
    data: ChangeEmailRequest,
    current_user: User = Depends(get_current_user),
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Switch to the new address. Signs out every session."""
    new_email = credentials.change_email(current_user, data.code)
    return {"message": f"Email changed to {new_email}. Please log in again."}


@router.post("/delete-account", response_model=MessageResponse)
@limiter.limit("5/minute")
def delete_account(
    request: Request,
    data: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
    credentials: CredentialChangeService = Depends(get_credential_change_service),
) -> dict:
    """Delete the signed-in account. Requires the password and, with 2FA, a second factor."""
    credentials.delete_account(current_user, data.password, data.otp_code, data.recovery_code)
    return {"message": "Account deleted"}
