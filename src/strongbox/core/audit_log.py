# Strongbox - Audit Logging
#
# Append-only audit log for vault security events.
# Every unlock, lock, failed attempt and key handoff is recorded with a
# timestamp and an event ID. Secrets never reach this module: callers pass
# user IDs, reasons and error kinds only.

import logging
import os
import socket
import sys
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from uuid import uuid4

import structlog

from .config import get_settings


class EventType(str, Enum):
    """Types of vault events that can be logged."""

    VAULT_CREATED = "vault.created"
    VAULT_UNLOCKED = "vault.unlocked"
    VAULT_LOCKED = "vault.locked"
    VAULT_AUTO_LOCKED = "vault.auto_locked"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_UNLOCK_THROTTLED = "vault.unlock.throttled"
    VAULT_KEY_CACHED = "vault.key.cached"
    VAULT_SECRET_CHANGED = "vault.secret.changed"
    VAULT_ERROR = "vault.error"


class EventSeverity(str, Enum):
    """
    Severity levels for vault events.

    - INFO: Normal activity (unlock, lock)
    - INVESTIGATE: Something unusual (a wrong master secret)
    - ALERT: Repeated failures, throttling
    - CRITICAL: Storage or crypto failure
    """
    INFO = "info"
    INVESTIGATE = "investigate"
    ALERT = "alert"
    CRITICAL = "critical"


# Keys that must never appear in an event payload.
_FORBIDDEN_DETAIL_KEYS = frozenset({
    "secret", "master_secret", "master_password", "password",
    "plaintext", "key", "vault_key",
})


class AuditLogger:
    """
    Append-only audit logger for vault events.

    Features:
    - Structured JSON logging (structlog)
    - Automatic timestamp and event ID
    - Daily log file under ``log_dir``
    - Refuses detail keys that look like secret material
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else Path("./audit_logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer()
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self.log_file = self._setup_file_handler()
        self.logger = structlog.get_logger("strongbox.audit")

    def _setup_file_handler(self) -> Path:
        """Attach a file handler for today's log (once per file)."""
        today = datetime.now().strftime("%Y-%m-%d")
        log_file = self.log_dir / f"audit_{today}.log"

        audit_logger = logging.getLogger("strongbox.audit")
        target = str(log_file.resolve())
        for handler in audit_logger.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
                return log_file

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter('%(message)s'))  # structlog renders

        audit_logger.addHandler(file_handler)
        audit_logger.setLevel(logging.INFO)
        return log_file

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_context: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Log a vault event (append-only).

        Args:
            event_type: Type of event (from EventType enum)
            severity: Severity level (from EventSeverity enum)
            message: Human-readable event description
            details: Additional event details (never secret material)
            user_context: Caller context (defaults to OS user and host)

        Returns:
            str: Event ID (UUID) for reference

        Raises:
            ValueError: If ``details`` contains a secret-looking key.
        """
        details = dict(details or {})
        leaked = _FORBIDDEN_DETAIL_KEYS.intersection(details)
        if leaked:
            raise ValueError(
                f"Refusing to log secret material in audit details: {sorted(leaked)}"
            )

        event_id = str(uuid4())
        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details,
            "user_context": user_context or self._get_default_user_context(),
        }

        self.logger.info("vault_event", **event_data)
        return event_id

    def _get_default_user_context(self) -> Dict[str, Any]:
        """Get default user context (OS user, hostname, platform)."""
        return {
            "os_user": os.getenv("USERNAME") or os.getenv("USER"),
            "hostname": socket.gethostname(),
            "platform": sys.platform,
        }


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger(log_dir=get_settings().audit_log_dir)
    return _audit_logger


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """
    Convenience function for logging vault events.

    Usage:
        log_security_event(
            EventType.VAULT_LOCKED,
            EventSeverity.INFO,
            "Vault locked by user",
            details={"user_id": "user1", "reason": "manual"}
        )
    """
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
