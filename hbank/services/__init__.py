"""Services layer - authentication flows and external integrations.

- auth_service / mfa_service / secret_generator: credential primitives
- email_confirmation_service, registration_service: account onboarding
- credential_change_service: password reset/change, email change
- two_factor_service: TOTP enrollment and recovery codes
- session_service: login, refresh token rotation, logout
- email_service / captcha_service / http_client: outbound integrations
"""

from .auth_service import AuthService
from .credential_change_service import CredentialChangeService
from .email_confirmation_service import EmailConfirmationService
from .mfa_service import MfaService
from .registration_service import RegistrationService
from .security_audit_service import SecurityAuditService, SecurityEventType
from .session_service import SessionService, SessionTokens, TwoFactorChallenge
from .two_factor_service import TwoFactorService

__all__ = [
    "AuthService",
    "CredentialChangeService",
    "EmailConfirmationService",
    "MfaService",
    "RegistrationService",
    "SecurityAuditService",
    "SecurityEventType",
    "SessionService",
    "SessionTokens",
    "TwoFactorChallenge",
    "TwoFactorService",
]
