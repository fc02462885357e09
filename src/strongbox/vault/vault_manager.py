# Strongbox - Vault Key Manager
#
# Owns the one live vault session in the process:
#   Locked            no user bound, no key cached
#   Unlocked(user)    32-byte vault key cached for exactly that user
#
# Unlock is corroborated twice: the master secret hash must verify and the
# stored canary must decrypt under the derived key. Failed unlocks arm a
# per-user exponential back-off. Encrypt/decrypt run on a private copy of
# the key taken under the session lock, so lock_vault() never tears a key
# in use.

import asyncio
import logging
import threading
import time
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Union

from ..core import EventSeverity, EventType, get_audit_logger
from ..core.audit_log import AuditLogger
from ..core.config import KEY_LENGTH, VaultSettings, get_settings
from .encryption import EncryptionService
from .errors import (
    DecryptionFailed,
    ErrorKind,
    InvalidCredentials,
    InvalidVaultKey,
    UnlockThrottled,
    VaultAlreadyInitialized,
    VaultError,
    VaultLocked,
    VaultNotInitialized,
    VaultStateError,
    WeakMasterSecret,
)
from .master_secret import MasterSecretVerifier, check_master_secret_policy
from .password_tools import calculate_strength, generate_secure_password
from .random_source import generate_salt
from .storage import KeyStore

logger = logging.getLogger(__name__)

CANARY_PLAINTEXT = "STRONGBOX_VAULT_OK"

_ERRORS_BY_KIND = {
    error.kind: error
    for error in (InvalidCredentials, VaultNotInitialized, UnlockThrottled, VaultLocked)
}


class VaultState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class VaultSession:
    """
    The cached vault key and the user it belongs to.

    The key lives in a bytearray so it can be overwritten with zeros before
    it is dropped. ``user_id`` is set if and only if the key is.
    Not thread-safe on its own; VaultKeyManager serializes access.
    """

    def __init__(self):
        self._user_id: Optional[str] = None
        self._key: Optional[bytearray] = None

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_unlocked(self) -> bool:
        return self._key is not None

    def bind(self, user_id: str, key: Union[bytes, bytearray]) -> None:
        """Cache ``key`` for ``user_id``, wiping any previous key first."""
        self.wipe()
        self._key = bytearray(key)
        self._user_id = user_id

    def snapshot(self) -> bytes:
        """Private copy of the key for one cipher operation."""
        if self._key is None:
            raise VaultLocked()
        return bytes(self._key)

    def wipe(self) -> None:
        """Overwrite the key with zeros and return to Locked."""
        if self._key is not None:
            for i in range(len(self._key)):
                self._key[i] = 0
        self._key = None
        self._user_id = None


@dataclass(frozen=True)
class VaultResult:
    """
    Outcome of unlock, initialize and change-secret calls.

    Truthy on success. ``kind`` names the failure; ``retry_after`` is the
    remaining back-off in seconds when the attempt was throttled.
    """

    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    retry_after: float = 0.0
    records: Optional[Dict[str, str]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, message: str, **kwargs) -> "VaultResult":
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **kwargs) -> "VaultResult":
        return cls(success=False, message=message, kind=kind, **kwargs)

    def raise_for_failure(self) -> None:
        """Raise the VaultError matching ``kind``; no-op on success."""
        if self.success:
            return
        if self.kind is ErrorKind.DECRYPTION_FAILED:
            raise DecryptionFailed()
        raise _ERRORS_BY_KIND.get(self.kind, VaultError)(self.message)


class VaultMetrics:
    """Timing samples (milliseconds) for derivation and cipher calls."""

    KEY_DERIVATION = "key_derivation"
    ENCRYPTION = "encryption"
    DECRYPTION = "decryption"

    def __init__(self, max_samples: int = 1000):
        self.max_samples = max_samples
        self._lock = threading.Lock()
        self._samples: Dict[str, List[float]] = defaultdict(list)

    def record(self, operation: str, duration_ms: float) -> None:
        with self._lock:
            samples = self._samples[operation]
            samples.append(duration_ms)
            if len(samples) > self.max_samples:
                del samples[0]

    def count(self, operation: str) -> int:
        with self._lock:
            return len(self._samples.get(operation, ()))

    def average(self, operation: str) -> float:
        with self._lock:
            samples = self._samples.get(operation)
            if not samples:
                return 0.0
            return sum(samples) / len(samples)

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        with self._lock:
            return {
                op: {"count": len(s), "average_ms": sum(s) / len(s) if s else 0.0}
                for op, s in self._samples.items()
            }

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()


@dataclass
class _UnlockFailures:
    """Back-off state for one user. ``guard`` serializes that user's attempts."""

    attempts: int = 0
    lockout_until: float = 0.0
    guard: threading.Lock = field(default_factory=threading.Lock)


class VaultKeyManager:
    """
    Vault key lifecycle: initialize, unlock, lock, encrypt, decrypt.

    One manager per process, passed explicitly to every collaborator that
    needs to encrypt or decrypt. Collaborators that already hold a derived
    key hand it over with :meth:`set_cached_vault_key` instead of building
    their own session.

    Security:
    - The master secret is never stored on the manager
    - The vault key exists only inside the session bytearray
    - Wrong secrets are an expected outcome (VaultResult), not an exception
    - Audit events carry user IDs and reasons only
    """

    def __init__(
        self,
        store: KeyStore,
        settings: Optional[VaultSettings] = None,
        audit: Optional[AuditLogger] = None,
        session: Optional[VaultSession] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.settings = settings if settings is not None else get_settings()
        self.audit = audit if audit is not None else get_audit_logger()
        self.metrics = VaultMetrics()

        self._session = session if session is not None else VaultSession()
        self._lock = threading.RLock()
        self._clock = clock

        # Rate limiting for unlock attempts, per user (prevent brute force)
        self._failures: Dict[str, _UnlockFailures] = {}

    # ── State ──────────────────────────────────────────────────────────

    @property
    def session(self) -> VaultSession:
        return self._session

    @property
    def is_vault_unlocked(self) -> bool:
        with self._lock:
            return self._session.is_unlocked

    @property
    def current_user_id(self) -> Optional[str]:
        with self._lock:
            return self._session.user_id

    @property
    def state(self) -> VaultState:
        return VaultState.UNLOCKED if self.is_vault_unlocked else VaultState.LOCKED

    def failed_attempts(self, user_id: str) -> int:
        """Consecutive failed unlocks for ``user_id`` since its last success."""
        with self._lock:
            failures = self._failures.get(user_id)
            return failures.attempts if failures is not None else 0

    def has_vault_key(self, user_id: str) -> bool:
        """True when a vault has been initialized for ``user_id``."""
        return self.store.load_salt(_require_user_id(user_id)) is not None

    # ── Transitions ────────────────────────────────────────────────────

    def initialize_vault_key(self, master_secret: str, user_id: str) -> VaultResult:
        """
        Create the vault for a new user and unlock it.

        Generates a fresh salt, derives the vault key, and stores the salt,
        the master secret hash and the canary. Only valid while Locked.

        The three values are written in one atomic store call; of two
        concurrent calls for the same user exactly one succeeds.

        Raises:
            VaultStateError: A session is already unlocked.
            VaultAlreadyInitialized: The user already has a salt; it is
                never replaced, since that would orphan existing records.
            WeakMasterSecret: The secret fails the minimum policy.
        """
        user_id = _require_user_id(user_id)
        with self._lock:
            if self._session.is_unlocked:
                raise VaultStateError("Lock the vault before initializing a new one")

        if self.store.load_salt(user_id) is not None:
            raise VaultAlreadyInitialized()

        is_valid, error_msg = check_master_secret_policy(
            master_secret, self.settings.min_master_secret_length
        )
        if not is_valid:
            raise WeakMasterSecret(error_msg)

        try:
            salt = generate_salt(self.settings.salt_length)
            key = self._derive(master_secret, salt)
            verifier = MasterSecretVerifier(
                iterations=self.settings.pbkdf2_iterations,
                salt_length=self.settings.master_hash_salt_length,
            )
            created = self.store.create_vault(
                user_id,
                salt,
                verifier.hash(master_secret),
                EncryptionService.encrypt(CANARY_PLAINTEXT, key),
            )
        except Exception as e:
            self._log_error("Failed to initialize vault", user_id, e)
            raise

        # Another caller created this vault after the check above
        if not created:
            raise VaultAlreadyInitialized()

        self.audit.log_event(
            event_type=EventType.VAULT_CREATED,
            severity=EventSeverity.INFO,
            message="Vault initialized with master password",
            details={"user_id": user_id},
        )

        with self._lock:
            # The vault exists either way; only the session handoff is refused
            if self._session.is_unlocked:
                raise VaultStateError(
                    "Vault was unlocked while initializing; unlock again to use the new vault"
                )
            self._session.bind(user_id, key)
        self._reset_failures(user_id)
        return VaultResult.ok("Vault created successfully")

    def unlock_vault(self, master_secret: str, user_id: str) -> VaultResult:
        """
        Unlock the vault for ``user_id``.

        Security: Rate limiting with exponential backoff to prevent brute
        force (1, 2, 4, 8, 16 seconds with the default settings). An attempt
        during the back-off window is refused without deriving a key.

        A failed attempt always leaves the vault Locked. Back-off is tracked
        per user, and attempts for one user run one at a time so a burst of
        concurrent guesses cannot slip through the same window.

        Returns:
            VaultResult, truthy on success
        """
        user_id = _require_user_id(user_id)
        failures = self._failures_for(user_id)
        with failures.guard:
            throttled = self._check_throttle(user_id, failures)
            if throttled is not None:
                return throttled

            try:
                salt = self.store.load_salt(user_id)
                if salt is None:
                    self.lock_vault(reason="unlock_failed")
                    return VaultResult.failure(
                        ErrorKind.NOT_INITIALIZED, "Vault does not exist. Initialize vault first."
                    )
                key = self._verified_key(master_secret, user_id, salt)
            except Exception as e:
                self._log_error("Vault unlock error", user_id, e)
                raise

            if key is None:
                return self._handle_failed_unlock(user_id, failures)

            with self._lock:
                self._session.bind(user_id, key)
            self._reset_failures(user_id)

        self.audit.log_event(
            event_type=EventType.VAULT_UNLOCKED,
            severity=EventSeverity.INFO,
            message="Vault unlocked successfully",
            details={"user_id": user_id},
        )
        return VaultResult.ok("Vault unlocked successfully")

    def lock_vault(self, reason: str = "manual") -> None:
        """Zero and drop the cached key. Safe to call in any state."""
        with self._lock:
            if not self._session.is_unlocked:
                return
            user_id = self._session.user_id
            self._session.wipe()

        event_type = EventType.VAULT_AUTO_LOCKED if reason == "timeout" else EventType.VAULT_LOCKED
        self.audit.log_event(
            event_type=event_type,
            severity=EventSeverity.INFO,
            message="Vault locked",
            details={"user_id": user_id, "reason": reason},
        )

    def set_cached_vault_key(self, key: Union[bytes, bytearray], user_id: str) -> None:
        """
        Hand an already-derived vault key to this manager.

        Replaces (and zeroes) any key currently cached, so the process keeps
        exactly one authoritative key.

        Raises:
            InvalidVaultKey: ``key`` is not 32 bytes.
        """
        user_id = _require_user_id(user_id)
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise InvalidVaultKey()

        with self._lock:
            self._session.bind(user_id, key)

        self.audit.log_event(
            event_type=EventType.VAULT_KEY_CACHED,
            severity=EventSeverity.INFO,
            message="Vault key handed over to session",
            details={"user_id": user_id},
        )

    def change_master_secret(
        self,
        old_secret: str,
        new_secret: str,
        user_id: str,
        records: Optional[Mapping[str, str]] = None,
    ) -> VaultResult:
        """
        Re-key the vault under a new master secret.

        ``records`` maps record IDs to blobs encrypted under the current key.
        They are re-encrypted under the new key and returned in
        ``result.records``; the caller persists them. If any record fails to
        decrypt, nothing is written and the old secret stays valid. A wrong
        ``old_secret`` counts as a failed unlock.

        The new salt, hash and canary replace the old ones in one atomic
        store call, so a failed write leaves the old secret working.

        Raises:
            WeakMasterSecret: ``new_secret`` fails the minimum policy.
            VaultStateError: The vault was re-keyed by another caller
                while this change was running; nothing was written.
        """
        user_id = _require_user_id(user_id)
        is_valid, error_msg = check_master_secret_policy(
            new_secret, self.settings.min_master_secret_length
        )
        if not is_valid:
            raise WeakMasterSecret(error_msg)

        failures = self._failures_for(user_id)
        with failures.guard:
            throttled = self._check_throttle(user_id, failures)
            if throttled is not None:
                return throttled

            salt = self.store.load_salt(user_id)
            if salt is None:
                return VaultResult.failure(
                    ErrorKind.NOT_INITIALIZED, "Vault does not exist. Initialize vault first."
                )
            old_key = self._verified_key(old_secret, user_id, salt)
            if old_key is None:
                return self._handle_failed_unlock(user_id, failures)
            return self._rekey(user_id, salt, old_key, new_secret, records)

    def _rekey(
        self,
        user_id: str,
        salt: bytes,
        old_key: bytes,
        new_secret: str,
        records: Optional[Mapping[str, str]],
    ) -> VaultResult:
        try:
            plaintexts = {
                record_id: self._timed_decrypt(blob, old_key)
                for record_id, blob in (records or {}).items()
            }
        except DecryptionFailed as e:
            logger.warning("Re-key aborted: record failed to decrypt (%s)", e.reason.value)
            return VaultResult.failure(
                ErrorKind.DECRYPTION_FAILED,
                "A record could not be decrypted with the current key; nothing was changed",
            )

        try:
            new_salt = generate_salt(self.settings.salt_length)
            new_key = self._derive(new_secret, new_salt)
            reencrypted = {
                record_id: self._timed_encrypt(plaintext, new_key)
                for record_id, plaintext in plaintexts.items()
            }
            verifier = MasterSecretVerifier(
                iterations=self.settings.pbkdf2_iterations,
                salt_length=self.settings.master_hash_salt_length,
            )
            saved = self.store.save_vault_metadata(
                user_id,
                salt,
                new_salt,
                verifier.hash(new_secret),
                EncryptionService.encrypt(CANARY_PLAINTEXT, new_key),
            )
        except Exception as e:
            self._log_error("Failed to change master password", user_id, e)
            raise

        if not saved:
            raise VaultStateError("Vault was re-keyed concurrently; nothing was changed")

        with self._lock:
            self._session.bind(user_id, new_key)
        self._reset_failures(user_id)

        self.audit.log_event(
            event_type=EventType.VAULT_SECRET_CHANGED,
            severity=EventSeverity.INFO,
            message="Master password changed",
            details={"user_id": user_id, "records": len(reencrypted)},
        )
        return VaultResult.ok("Master password changed successfully", records=reencrypted)

    # ── Cipher operations ──────────────────────────────────────────────

    def encrypt_password(self, plaintext: str) -> str:
        """
        Encrypt a credential under the cached vault key.

        Raises:
            VaultLocked: No key is cached.
        """
        return self._timed_encrypt(plaintext, self._snapshot_key())

    def decrypt_password(self, blob: str) -> str:
        """
        Decrypt a blob from :meth:`encrypt_password`.

        Raises:
            VaultLocked: No key is cached.
            DecryptionFailed: Malformed blob or a different key.
        """
        return self._timed_decrypt(blob, self._snapshot_key())

    def decrypt_passwords(self, records: Mapping[str, str]) -> Dict[str, str]:
        """Decrypt many blobs under one key snapshot, keyed like ``records``."""
        key = self._snapshot_key()
        return {record_id: self._timed_decrypt(blob, key) for record_id, blob in records.items()}

    # ── Async variants (key derivation off the event loop) ─────────────

    async def initialize_vault_key_async(self, master_secret: str, user_id: str) -> VaultResult:
        return await asyncio.to_thread(self.initialize_vault_key, master_secret, user_id)

    async def unlock_vault_async(self, master_secret: str, user_id: str) -> VaultResult:
        return await asyncio.to_thread(self.unlock_vault, master_secret, user_id)

    async def decrypt_passwords_async(self, records: Mapping[str, str]) -> Dict[str, str]:
        return await asyncio.to_thread(self.decrypt_passwords, records)

    # ── Pass-throughs for the UI layer ─────────────────────────────────

    def hash_master_secret(self, master_secret: str) -> str:
        verifier = MasterSecretVerifier(
            iterations=self.settings.pbkdf2_iterations,
            salt_length=self.settings.master_hash_salt_length,
        )
        return verifier.hash(master_secret)

    @staticmethod
    def verify_master_secret(master_secret: str, stored_hash: str) -> bool:
        return MasterSecretVerifier.verify(master_secret, stored_hash)

    @staticmethod
    def calculate_strength(password: str) -> int:
        return calculate_strength(password)

    @staticmethod
    def generate_secure_password(length: int = 16, **options) -> str:
        return generate_secure_password(length, **options)

    # ── Internals ──────────────────────────────────────────────────────

    def _snapshot_key(self) -> bytes:
        with self._lock:
            return self._session.snapshot()

    def _derive(self, master_secret: str, salt: bytes) -> bytes:
        started = time.perf_counter()
        key = EncryptionService.derive_key(
            master_secret, salt, self.settings.pbkdf2_iterations
        )
        self.metrics.record(VaultMetrics.KEY_DERIVATION, _elapsed_ms(started))
        return key

    def _timed_encrypt(self, plaintext: str, key: bytes) -> str:
        started = time.perf_counter()
        blob = EncryptionService.encrypt(plaintext, key)
        self.metrics.record(VaultMetrics.ENCRYPTION, _elapsed_ms(started))
        return blob

    def _timed_decrypt(self, blob: str, key: bytes) -> str:
        started = time.perf_counter()
        plaintext = EncryptionService.decrypt(blob, key)
        self.metrics.record(VaultMetrics.DECRYPTION, _elapsed_ms(started))
        return plaintext

    def _verified_key(self, master_secret: str, user_id: str, salt: bytes) -> Optional[bytes]:
        """Derive the key if the secret passes both checks, else None."""
        if not isinstance(master_secret, str):
            return None

        stored_hash = self.store.load_master_secret_hash(user_id)
        if stored_hash is not None and not MasterSecretVerifier.verify(master_secret, stored_hash):
            return None

        key = self._derive(master_secret, salt)

        canary = self.store.load_canary(user_id)
        if canary is None:
            if stored_hash is None:
                # Nothing to corroborate against
                logger.warning("Vault for user has neither hash nor canary; refusing unlock")
                return None
            # Vault predates canaries: add one now that the hash has verified
            self.store.save_canary(user_id, EncryptionService.encrypt(CANARY_PLAINTEXT, key))
            return key

        try:
            if EncryptionService.decrypt(canary, key) != CANARY_PLAINTEXT:
                return None
        except DecryptionFailed:
            return None
        return key

    def _failures_for(self, user_id: str) -> _UnlockFailures:
        with self._lock:
            return self._failures.setdefault(user_id, _UnlockFailures())

    def _check_throttle(self, user_id: str, failures: _UnlockFailures) -> Optional[VaultResult]:
        """THROTTLED result while the user's back-off window is open, else None."""
        with self._lock:
            remaining = failures.lockout_until - self._clock()
        if remaining <= 0:
            return None

        self.lock_vault(reason="unlock_failed")
        self.audit.log_event(
            event_type=EventType.VAULT_UNLOCK_THROTTLED,
            severity=EventSeverity.ALERT,
            message=f"Unlock attempt during lockout period ({remaining:.1f}s remaining)",
            details={"user_id": user_id},
        )
        return VaultResult.failure(
            ErrorKind.THROTTLED,
            f"Too many failed attempts. Please wait {remaining:.0f} seconds.",
            retry_after=remaining,
        )

    def _handle_failed_unlock(self, user_id: str, failures: _UnlockFailures) -> VaultResult:
        """Rate-limited failure response for wrong password attempts."""
        self.lock_vault(reason="unlock_failed")
        with self._lock:
            failures.attempts += 1
            attempts = failures.attempts
            delay_seconds = self.settings.backoff_for(attempts)
            failures.lockout_until = self._clock() + delay_seconds

        severity = EventSeverity.ALERT if attempts > 1 else EventSeverity.INVESTIGATE
        self.audit.log_event(
            event_type=EventType.VAULT_UNLOCK_FAILED,
            severity=severity,
            message=f"Vault unlock failed: incorrect password (attempt {attempts}, {delay_seconds:g}s lockout)",
            details={"user_id": user_id, "failed_attempts": attempts},
        )

        if delay_seconds <= 0 or attempts == 1:
            message = "Incorrect master password"
        else:
            message = f"Incorrect master password. Please wait {delay_seconds:g} seconds before trying again."
        return VaultResult.failure(
            ErrorKind.INVALID_CREDENTIALS, message, retry_after=delay_seconds
        )

    def _reset_failures(self, user_id: str) -> None:
        with self._lock:
            failures = self._failures.get(user_id)
            if failures is not None:
                failures.attempts = 0
                failures.lockout_until = 0.0

    def _log_error(self, message: str, user_id: str, error: Exception) -> None:
        self.audit.log_event(
            event_type=EventType.VAULT_ERROR,
            severity=EventSeverity.CRITICAL,
            message=f"{message}: {type(error).__name__}",
            details={"user_id": user_id},
        )


def _require_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise ValueError("user_id must be a non-empty string")
    return user_id


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
