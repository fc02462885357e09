# Strongbox - Vault Module
#
# Master secret -> vault key (PBKDF2), authenticated AES-256-CBC records,
# vault key lifecycle, master secret verifier and password tools.

from .auto_lock import AutoLockTimer
from .encryption import EncryptionService
from .errors import (
    DecryptionFailed,
    DecryptionFailureReason,
    ErrorKind,
    InvalidCredentials,
    InvalidVaultKey,
    RandomSourceUnavailable,
    UnlockThrottled,
    VaultAlreadyInitialized,
    VaultError,
    VaultLocked,
    VaultNotInitialized,
    VaultStateError,
    WeakMasterSecret,
)
from .master_secret import (
    MasterSecretVerifier,
    check_master_secret_policy,
    hash_master_secret,
    verify_master_secret,
)
from .password_tools import (
    calculate_strength,
    generate_secure_password,
    strength_description,
)
from .random_source import generate_random_bytes
from .storage import InMemoryKeyStore, KeyStore, SQLiteKeyStore
from .vault_manager import (
    VaultKeyManager,
    VaultMetrics,
    VaultResult,
    VaultSession,
    VaultState,
)

__all__ = [
    "AutoLockTimer",
    "EncryptionService",
    "VaultKeyManager",
    "VaultMetrics",
    "VaultResult",
    "VaultSession",
    "VaultState",
    "KeyStore",
    "InMemoryKeyStore",
    "SQLiteKeyStore",
    "MasterSecretVerifier",
    "check_master_secret_policy",
    "hash_master_secret",
    "verify_master_secret",
    "calculate_strength",
    "generate_secure_password",
    "strength_description",
    "generate_random_bytes",
    # Errors
    "ErrorKind",
    "DecryptionFailureReason",
    "VaultError",
    "VaultLocked",
    "InvalidCredentials",
    "DecryptionFailed",
    "RandomSourceUnavailable",
    "VaultAlreadyInitialized",
    "VaultNotInitialized",
    "VaultStateError",
    "WeakMasterSecret",
    "UnlockThrottled",
    "InvalidVaultKey",
]
