"""
Vault error kinds and exception classes.

Every exception carries a machine-readable ``kind`` so callers can branch
without matching on message text. Messages never contain secrets, keys or
plaintext.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Machine-readable failure kinds shared by exceptions and results."""

    VAULT_LOCKED = "vault_locked"
    INVALID_CREDENTIALS = "invalid_credentials"
    DECRYPTION_FAILED = "decryption_failed"
    RANDOM_SOURCE_UNAVAILABLE = "random_source_unavailable"
    ALREADY_INITIALIZED = "already_initialized"
    NOT_INITIALIZED = "not_initialized"
    INVALID_STATE = "invalid_state"
    WEAK_MASTER_SECRET = "weak_master_secret"
    THROTTLED = "throttled"
    INVALID_KEY = "invalid_key"


class DecryptionFailureReason(str, Enum):
    """Local diagnostic reason codes for a failed decrypt (never shown to users)."""

    MALFORMED = "malformed"
    AUTHENTICATION = "authentication"
    BAD_PADDING = "bad_padding"
    BAD_ENCODING = "bad_encoding"
    INVALID_KEY = "invalid_key"


class VaultError(Exception):
    """Base exception for vault operations"""

    kind: ErrorKind = ErrorKind.INVALID_STATE
    default_message = "Vault error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class VaultLocked(VaultError):
    """Raised when encrypt/decrypt is called with no cached vault key"""
    kind = ErrorKind.VAULT_LOCKED
    default_message = "Vault not unlocked. Please authenticate first."


class InvalidCredentials(VaultError):
    """Raised when a master secret does not match"""
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Incorrect master password"


class DecryptionFailed(VaultError):
    """Raised when a blob cannot be decrypted with the given key.

    The message is always the same; ``reason`` is for local diagnostics.
    """
    kind = ErrorKind.DECRYPTION_FAILED
    default_message = "Decryption failed"

    def __init__(self, reason: DecryptionFailureReason = DecryptionFailureReason.MALFORMED):
        super().__init__()
        self.reason = reason


class RandomSourceUnavailable(VaultError):
    """Raised when the OS secure random source cannot be used (fatal)"""
    kind = ErrorKind.RANDOM_SOURCE_UNAVAILABLE
    default_message = "Secure random source unavailable"


class VaultAlreadyInitialized(VaultError):
    """Raised when initializing a vault for a user that already has a salt"""
    kind = ErrorKind.ALREADY_INITIALIZED
    default_message = "Vault already exists for this user. Use unlock_vault() instead."


class VaultNotInitialized(VaultError):
    """Raised when an operation needs a vault that was never created"""
    kind = ErrorKind.NOT_INITIALIZED
    default_message = "Vault does not exist. Initialize vault first."


class VaultStateError(VaultError):
    """Raised when an operation is called from the wrong vault state"""
    kind = ErrorKind.INVALID_STATE
    default_message = "Operation not allowed in the current vault state"


class WeakMasterSecret(VaultError):
    """Raised when a new master secret fails the minimum policy"""
    kind = ErrorKind.WEAK_MASTER_SECRET
    default_message = "Master password does not meet the minimum requirements"


class UnlockThrottled(VaultError):
    """Raised when unlock attempts are refused during back-off"""
    kind = ErrorKind.THROTTLED
    default_message = "Too many failed attempts. Please wait before trying again."


class InvalidVaultKey(VaultError):
    """Raised when a handed-over vault key has the wrong shape"""
    kind = ErrorKind.INVALID_KEY
    default_message = "Vault key must be exactly 32 bytes"
