# Strongbox - Core Module
#
# Shared functionality used by the vault package:
# - Audit logging
# - Configuration
# - SQLite helpers

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
)
from .config import (
    DEFAULT_PBKDF2_ITERATIONS,
    VaultSettings,
    get_settings,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "log_security_event",
    # Configuration
    "DEFAULT_PBKDF2_ITERATIONS",
    "VaultSettings",
    "get_settings",
]
