# Strongbox - Main Package
#
# Local password-vault cryptographic core: derives a vault key from the
# user's master secret, encrypts individual credential records, and keeps
# the key in memory only while the vault is unlocked.

__version__ = "0.1.0"
__author__ = "Strongbox Team"
__description__ = "Local password-vault cryptographic core"

from .core import EventSeverity, EventType, VaultSettings, get_audit_logger
from .vault import (
    EncryptionService,
    InMemoryKeyStore,
    SQLiteKeyStore,
    VaultKeyManager,
    calculate_strength,
    generate_secure_password,
)

__all__ = [
    "__version__",
    "VaultSettings",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "EncryptionService",
    "VaultKeyManager",
    "InMemoryKeyStore",
    "SQLiteKeyStore",
    "calculate_strength",
    "generate_secure_password",
]
