"""
Audit logging for security events.
Logs sign-ins, token issuance, refused WebSocket handshakes and denied
access for forensics.
"""
import logging
import json
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from enum import Enum

logger = logging.getLogger(__name__)


class AuditEventType(str, Enum):
    """Types of security audit events."""
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    TOKEN_ISSUED = "token_issued"
    HANDSHAKE_REJECTED = "handshake_rejected"
    AUTHZ_DENIED = "authorization_denied"


class AuditLogger:
    """
    Security audit logger.

    All audit events are logged with timestamp, event type, user
    identifier, source IP address and additional context metadata.
    """

    @staticmethod
    def log_event(
        event_type: AuditEventType,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None
    ) -> None:
        """
        Log a security audit event.

        Args:
            event_type: Type of security event
            user_id: User identifier (if available)
            ip_address: Source IP address
            success: Whether the operation succeeded
            metadata: Additional context (e.g., endpoint, resource)
            error_message: Error message for failed operations
        """
        audit_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
            "success": success,
            "user_id": user_id,
            "ip_address": ip_address,
            "metadata": metadata or {},
            "error_message": error_message
        }

        log_level = logging.INFO if success else logging.WARNING
        logger.log(
            log_level,
            f"AUDIT: {event_type.value} | user={user_id} | ip={ip_address} | "
            f"success={success} | {json.dumps(audit_entry)}"
        )

    @staticmethod
    def log_auth_success(user_id: str, ip_address: Optional[str], provider: str = "google") -> None:
        """Log successful sign-in."""
        AuditLogger.log_event(
            event_type=AuditEventType.AUTH_SUCCESS,
            user_id=user_id,
            ip_address=ip_address,
            metadata={"provider": provider}
        )

    @staticmethod
    def log_auth_failure(ip_address: Optional[str], reason: str, provider: str = "google") -> None:
        """Log failed sign-in."""
        AuditLogger.log_event(
            event_type=AuditEventType.AUTH_FAILURE,
            ip_address=ip_address,
            success=False,
            metadata={"provider": provider},
            error_message=reason
        )

    @staticmethod
    def log_token_issued(user_id: str, expires_in: int) -> None:
        """Log access token issuance."""
        AuditLogger.log_event(
            event_type=AuditEventType.TOKEN_ISSUED,
            user_id=user_id,
            metadata={"expires_in": expires_in}
        )

    @staticmethod
    def log_handshake_rejected(ip_address: Optional[str], reason: str) -> None:
        """Log a WebSocket connection refused at handshake."""
        AuditLogger.log_event(
            event_type=AuditEventType.HANDSHAKE_REJECTED,
            ip_address=ip_address,
            success=False,
            error_message=reason
        )

    @staticmethod
    def log_authorization_denied(user_id: str, resource: str, action: str) -> None:
        """Log an authenticated caller acting on a resource they do not own."""
        AuditLogger.log_event(
            event_type=AuditEventType.AUTHZ_DENIED,
            user_id=user_id,
            success=False,
            metadata={"resource": resource, "action": action}
        )


# Global audit logger instance
audit_logger = AuditLogger()
