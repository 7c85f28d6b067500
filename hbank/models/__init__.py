"""SQLAlchemy ORM models."""

from hbank.models.auth_token import AuthToken, TokenKind
from hbank.models.rate_limit_marker import RateLimitKind, RateLimitMarker
from hbank.models.recovery_code import RecoveryCode
from hbank.models.security_audit_log import SecurityAuditLog
from hbank.models.single_use_code import CodeKind, SingleUseCode
from hbank.models.user import User

__all__ = [
    "AuthToken",
    "CodeKind",
    "RateLimitKind",
    "RateLimitMarker",
    "RecoveryCode",
    "SecurityAuditLog",
    "SingleUseCode",
    "TokenKind",
    "User",
]
