"""Service for logging security events."""

import json
import logging

from sqlalchemy.orm import Session

from hbank.models.security_audit_log import SecurityAuditLog

logger = logging.getLogger(__name__)


class SecurityEventType:
    """Constants for security event types."""

    REGISTERED = "registered"
    EMAIL_CODE_SENT = "email_code_sent"
    EMAIL_CONFIRMED = "email_confirmed"
    UNCONFIRMED_ACCOUNT_DELETED = "unconfirmed_account_deleted"
    ACCOUNT_DELETED = "account_deleted"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_BLOCKED_UNCONFIRMED = "login_blocked_unconfirmed"
    LOGIN_TWO_FACTOR_REQUIRED = "login_two_factor_required"
    TOKEN_REUSE_DETECTED = "token_reuse_detected"
    LOGOUT = "logout"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    EMAIL_CHANGE_REQUESTED = "email_change_requested"
    EMAIL_CHANGED = "email_changed"
    MFA_ENABLED = "mfa_enabled"
    MFA_SECRET_ROTATED = "mfa_secret_rotated"
    MFA_FAILED = "mfa_failed"
    RECOVERY_CODES_REGENERATED = "recovery_codes_regenerated"
    RECOVERY_CODE_USED = "recovery_code_used"


class SecurityAuditService:
    """Service for recording security audit events."""

    @staticmethod
    def log_event(
        db: Session,
        event_type: str,
        user_id: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Log a security event to the database."""
        log_entry = SecurityAuditLog(
            user_id=user_id,
            event_type=event_type,
            details=json.dumps(details) if details else None,
        )
        db.add(log_entry)
        # Note: Caller is responsible for committing the transaction

        # Also log to application logger for monitoring
        logger.info(f"Security event: {event_type} | user_id={user_id}")
