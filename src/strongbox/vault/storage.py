# Strongbox - Key Store
#
# Persistence for the non-secret per-user vault metadata:
#   salt                 32 random bytes, input to key derivation
#   master secret hash   verifier string (pbkdf2_sha256$...)
#   canary               encrypted known value, second unlock check
#
# Nothing stored here is secret. The vault key and the master secret
# never pass through a KeyStore.
#
# Vault creation and re-keying write all three values in one atomic step;
# a salt paired with another key's hash or canary locks the user out.

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.config import VaultSettings, get_settings
from ..core.db import ensure_schema, open_db
from .encryption import EncryptionService

_SCHEMA = """
CREATE TABLE IF NOT EXISTS vault_users (
    user_id TEXT PRIMARY KEY,
    salt TEXT,
    master_secret_hash TEXT,
    canary TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_COLUMNS = ("salt", "master_secret_hash", "canary")


class KeyStore(ABC):
    """Storage collaborator for per-user vault metadata."""

    @abstractmethod
    def load_salt(self, user_id: str) -> Optional[bytes]:
        """Return the user's salt, or None if no vault exists."""

    @abstractmethod
    def save_salt(self, user_id: str, salt: bytes) -> None:
        ...

    @abstractmethod
    def load_master_secret_hash(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def save_master_secret_hash(self, user_id: str, value: str) -> None:
        ...

    @abstractmethod
    def load_canary(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def save_canary(self, user_id: str, blob: str) -> None:
        ...

    @abstractmethod
    def create_vault(
        self, user_id: str, salt: bytes, master_secret_hash: str, canary: str
    ) -> bool:
        """
        Store a new vault's metadata in one atomic step.

        Returns False, writing nothing, if ``user_id`` already has a salt.
        """

    @abstractmethod
    def save_vault_metadata(
        self,
        user_id: str,
        expected_salt: bytes,
        salt: bytes,
        master_secret_hash: str,
        canary: str,
    ) -> bool:
        """
        Replace salt, hash and canary together in one atomic step.

        Only applies while the stored salt still equals ``expected_salt``;
        returns False, writing nothing, otherwise.
        """

    @abstractmethod
    def delete_user(self, user_id: str) -> None:
        """Forget everything stored for ``user_id`` (no-op if unknown)."""


class InMemoryKeyStore(KeyStore):
    """Dict-backed store for tests and single-process use."""

    def __init__(self):
        self._lock = threading.Lock()
        self._users: Dict[str, Dict[str, object]] = {}

    def _get(self, user_id: str, field: str):
        with self._lock:
            return self._users.get(user_id, {}).get(field)

    def _put(self, user_id: str, field: str, value) -> None:
        with self._lock:
            self._users.setdefault(user_id, {})[field] = value

    def load_salt(self, user_id: str) -> Optional[bytes]:
        return self._get(user_id, "salt")

    def save_salt(self, user_id: str, salt: bytes) -> None:
        self._put(user_id, "salt", bytes(salt))

    def load_master_secret_hash(self, user_id: str) -> Optional[str]:
        return self._get(user_id, "master_secret_hash")

    def save_master_secret_hash(self, user_id: str, value: str) -> None:
        self._put(user_id, "master_secret_hash", value)

    def load_canary(self, user_id: str) -> Optional[str]:
        return self._get(user_id, "canary")

    def save_canary(self, user_id: str, blob: str) -> None:
        self._put(user_id, "canary", blob)

    def create_vault(
        self, user_id: str, salt: bytes, master_secret_hash: str, canary: str
    ) -> bool:
        with self._lock:
            if self._users.get(user_id, {}).get("salt") is not None:
                return False
            self._users[user_id] = {
                "salt": bytes(salt),
                "master_secret_hash": master_secret_hash,
                "canary": canary,
            }
            return True

    def save_vault_metadata(
        self,
        user_id: str,
        expected_salt: bytes,
        salt: bytes,
        master_secret_hash: str,
        canary: str,
    ) -> bool:
        with self._lock:
            current = self._users.get(user_id, {}).get("salt")
            if current is None or current != bytes(expected_salt):
                return False
            self._users[user_id] = {
                "salt": bytes(salt),
                "master_secret_hash": master_secret_hash,
                "canary": canary,
            }
            return True

    def delete_user(self, user_id: str) -> None:
        with self._lock:
            self._users.pop(user_id, None)


class SQLiteKeyStore(KeyStore):
    """
    SQLite-backed store (table ``vault_users``).

    Salts are stored base64-encoded. Every call opens its own short-lived
    connection, so one instance is safe to share between threads.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        ensure_schema(self.db_path, _SCHEMA)

    @classmethod
    def from_settings(cls, settings: Optional[VaultSettings] = None) -> "SQLiteKeyStore":
        """Open the store at ``settings.db_path`` (process settings by default)."""
        settings = settings if settings is not None else get_settings()
        return cls(settings.db_path)

    def _read(self, user_id: str, column: str) -> Optional[str]:
        if column not in _COLUMNS:
            raise ValueError(f"Unknown column: {column}")
        with open_db(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {column} FROM vault_users WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return row[column] if row is not None else None

    def _write(self, user_id: str, column: str, value: str) -> None:
        if column not in _COLUMNS:
            raise ValueError(f"Unknown column: {column}")
        now = datetime.now(timezone.utc).isoformat()
        with open_db(self.db_path) as conn:
            conn.execute(
                f"""
                INSERT INTO vault_users (user_id, {column}, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    {column} = excluded.{column},
                    updated_at = excluded.updated_at
                """,
                (user_id, value, now, now),
            )

    def load_salt(self, user_id: str) -> Optional[bytes]:
        value = self._read(user_id, "salt")
        if value is None:
            return None
        return EncryptionService.decode_from_storage(value)

    def save_salt(self, user_id: str, salt: bytes) -> None:
        self._write(user_id, "salt", EncryptionService.encode_for_storage(bytes(salt)))

    def load_master_secret_hash(self, user_id: str) -> Optional[str]:
        return self._read(user_id, "master_secret_hash")

    def save_master_secret_hash(self, user_id: str, value: str) -> None:
        self._write(user_id, "master_secret_hash", value)

    def load_canary(self, user_id: str) -> Optional[str]:
        return self._read(user_id, "canary")

    def save_canary(self, user_id: str, blob: str) -> None:
        self._write(user_id, "canary", blob)

    def create_vault(
        self, user_id: str, salt: bytes, master_secret_hash: str, canary: str
    ) -> bool:
        # A row without a salt is a partial vault and may be completed.
        now = datetime.now(timezone.utc).isoformat()
        with open_db(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO vault_users
                    (user_id, salt, master_secret_hash, canary, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    salt = excluded.salt,
                    master_secret_hash = excluded.master_secret_hash,
                    canary = excluded.canary,
                    updated_at = excluded.updated_at
                WHERE vault_users.salt IS NULL
                """,
                (
                    user_id,
                    EncryptionService.encode_for_storage(bytes(salt)),
                    master_secret_hash,
                    canary,
                    now,
                    now,
                ),
            )
            return cursor.rowcount == 1

    def save_vault_metadata(
        self,
        user_id: str,
        expected_salt: bytes,
        salt: bytes,
        master_secret_hash: str,
        canary: str,
    ) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        with open_db(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE vault_users
                SET salt = ?, master_secret_hash = ?, canary = ?, updated_at = ?
                WHERE user_id = ? AND salt = ?
                """,
                (
                    EncryptionService.encode_for_storage(bytes(salt)),
                    master_secret_hash,
                    canary,
                    now,
                    user_id,
                    EncryptionService.encode_for_storage(bytes(expected_salt)),
                ),
            )
            return cursor.rowcount == 1

    def delete_user(self, user_id: str) -> None:
        with open_db(self.db_path) as conn:
            conn.execute("DELETE FROM vault_users WHERE user_id = ?", (user_id,))
