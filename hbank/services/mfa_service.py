"""TOTP provisioning/verification, secret encryption and recovery codes."""

from dataclasses import dataclass
from io import BytesIO

import pyotp
import qrcode
from cryptography.fernet import Fernet, InvalidToken

from hbank.config import Settings
from hbank.services import secret_generator


@dataclass(frozen=True)
class OtpEnrollment:
    """A provisioned (not yet activated) TOTP secret and its scannable form."""

    secret: str
    uri: str
    qr_png: bytes


class MfaService:
    """Service for TOTP and recovery code operations."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _fernet(self) -> Fernet:
        if not self._settings.mfa_encryption_key:
            raise ValueError("MFA encryption key not configured")
        return Fernet(self._settings.mfa_encryption_key.encode())

    @staticmethod
    def generate_totp_secret() -> str:
        """Generate a new TOTP secret (base32 encoded, 32 characters)."""
        return pyotp.random_base32()

    @staticmethod
    def get_totp_uri(secret: str, account_label: str, issuer: str) -> str:
        """Get otpauth:// URI for QR code scanning."""
        return pyotp.TOTP(secret).provisioning_uri(name=account_label, issuer_name=issuer)

    @staticmethod
    def qr_code_png(uri: str) -> bytes:
        """Render a URI as a PNG QR code."""
        image = qrcode.make(uri)
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()

    def enrollment_for(self, secret: str, account_label: str, issuer: str | None = None) -> OtpEnrollment:
        """Build the enrollment artifact for an existing secret."""
        uri = self.get_totp_uri(secret, account_label, issuer or self._settings.otp_issuer)
        return OtpEnrollment(secret=secret, uri=uri, qr_png=self.qr_code_png(uri))

    def provision(self, account_label: str, issuer: str | None = None) -> OtpEnrollment:
        """Generate a new secret and its enrollment artifact. Activates nothing."""
        return self.enrollment_for(self.generate_totp_secret(), account_label, issuer)

    @staticmethod
    def verify_totp(secret: str, code: str) -> bool:
        """Verify TOTP code. Allows 1 window of drift (30 seconds each side)."""
        if not code:
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=1)

    def encrypt_secret(self, secret: str) -> str:
        """Encrypt TOTP secret for storage using Fernet.

        Requires mfa_encryption_key to be a valid Fernet key.
        Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
        """
        return self._fernet().encrypt(secret.encode()).decode()

    def decrypt_secret(self, encrypted: str) -> str:
        """Decrypt TOTP secret from storage."""
        try:
            return self._fernet().decrypt(encrypted.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Stored OTP secret cannot be decrypted with the configured key") from e

    def generate_recovery_codes(self) -> list[str]:
        """Generate a batch of distinct alphanumeric recovery codes."""
        codes: list[str] = []
        while len(codes) < self._settings.recovery_code_count:
            code = secret_generator.random_code(self._settings.recovery_code_length)
            if code not in codes:
                codes.append(code)
        return codes
