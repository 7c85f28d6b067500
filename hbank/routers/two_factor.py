"""Two-factor router for TOTP enrollment and recovery codes."""

import logging

from fastapi import APIRouter, Depends, Request, Response

from hbank.dependencies.auth import get_current_user
from hbank.dependencies.services import get_two_factor_service
from hbank.models.user import User
from hbank.rate_limiter import limiter
from hbank.schemas.two_factor import (
    OtpCredentials,
    OtpKeyResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
    PasswordConfirm,
    RecoveryCodesResponse,
)
from hbank.services.two_factor_service import TwoFactorService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/two-factor", tags=["two-factor"])

PNG_MEDIA_TYPE = "image/png"


@router.post("/otp/activate", response_class=Response)
@limiter.limit("5/minute")
def activate_otp(
    request: Request,
    data: OtpCredentials,
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> Response:
    """Start TOTP enrollment. Returns the QR code to scan as PNG."""
    png = two_factor.activate_otp(data.email, data.password)
    return Response(content=png, media_type=PNG_MEDIA_TYPE)


@router.post("/otp/qr", response_class=Response)
@limiter.limit("5/minute")
def get_otp_qr_code(
    request: Request,
    data: OtpCredentials,
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> Response:
    """Show the current enrollment's QR code again."""
    png = two_factor.get_otp_qr_code(data.email, data.password)
    return Response(content=png, media_type=PNG_MEDIA_TYPE)


@router.post("/otp/key", response_model=OtpKeyResponse)
@limiter.limit("5/minute")
def get_otp_key(
    request: Request,
    data: OtpCredentials,
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> dict:
    """Show the current enrollment's key for manual entry."""
    return {"otp_key": two_factor.get_otp_key(data.email, data.password)}


@router.post("/otp/verify", response_model=OtpVerifyResponse)
@limiter.limit("10/minute")
def verify_otp(
    request: Request,
    data: OtpVerifyRequest,
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> dict:
    """Verify a TOTP code.

    The first successful verification enables two-factor authentication and
    returns the recovery codes. They are shown only this once.
    """
    recovery_codes = two_factor.verify_otp(data.email, data.code)
    if recovery_codes is not None:
        return {
            "message": "Two-factor authentication enabled",
            "recovery_codes": recovery_codes,
        }
    return {"message": "Code verified"}


@router.post("/otp/new", response_class=Response)
@limiter.limit("5/minute")
def new_otp(
    request: Request,
    data: PasswordConfirm,
    current_user: User = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> Response:
    """Provision a replacement secret. The current one works until the new one is verified."""
    png = two_factor.new_otp(current_user, data.password)
    return Response(content=png, media_type=PNG_MEDIA_TYPE)


@router.post("/recovery/new", response_model=RecoveryCodesResponse)
@limiter.limit("5/minute")
def new_recovery_codes(
    request: Request,
    data: PasswordConfirm,
    current_user: User = Depends(get_current_user),
    two_factor: TwoFactorService = Depends(get_two_factor_service),
) -> dict:
    """Regenerate recovery codes. Every previous code stops working."""
    return {"recovery_codes": two_factor.new_recovery_codes(current_user, data.password)}
