# Strongbox - Configuration
#
# Validated settings for key derivation, unlock back-off and auto-lock.
#
# Values come from keyword arguments or from STRONGBOX_* environment
# variables (a .env file is honoured via python-dotenv):
#
#     STRONGBOX_PBKDF2_ITERATIONS      default 100000
#     STRONGBOX_ALLOW_WEAK_ITERATIONS  "1"/"true" to permit < 100000
#     STRONGBOX_AUTO_LOCK_SECONDS      default 300
#     STRONGBOX_AUDIT_LOG_DIR          default ./audit_logs
#     STRONGBOX_DB_PATH                default data/strongbox.db
#
# The PBKDF2 iteration floor can only be lowered through the explicit
# allow_weak_iterations switch; doing so logs a warning every time.

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

DEFAULT_PBKDF2_ITERATIONS = 100_000
KEY_LENGTH = 32  # AES-256
SALT_LENGTH = 32
MASTER_HASH_SALT_LENGTH = 16

_ENV_PREFIX = "STRONGBOX_"
_TRUTHY = {"1", "true", "yes", "on"}


class VaultSettings(BaseModel):
    """Validated vault configuration."""

    pbkdf2_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=1)
    allow_weak_iterations: bool = False
    salt_length: int = Field(default=SALT_LENGTH, ge=16)
    master_hash_salt_length: int = Field(default=MASTER_HASH_SALT_LENGTH, ge=16)
    min_master_secret_length: int = Field(default=8, ge=1)
    auto_lock_seconds: int = Field(default=300, ge=1)
    unlock_backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    unlock_backoff_max_seconds: float = Field(default=16.0, ge=0.0)
    audit_log_dir: Optional[Path] = None
    db_path: Path = Path("data/strongbox.db")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_iteration_floor(self) -> "VaultSettings":
        """Refuse silently weakened key derivation."""
        if self.pbkdf2_iterations < DEFAULT_PBKDF2_ITERATIONS:
            if not self.allow_weak_iterations:
                raise ValueError(
                    f"pbkdf2_iterations={self.pbkdf2_iterations} is below the "
                    f"{DEFAULT_PBKDF2_ITERATIONS} floor; set "
                    "allow_weak_iterations=True to override explicitly"
                )
            logger.warning(
                "PBKDF2 iteration count lowered to %d by explicit override",
                self.pbkdf2_iterations,
            )
        return self

    @property
    def backoff_enabled(self) -> bool:
        return self.unlock_backoff_base_seconds > 0

    def backoff_for(self, failed_attempts: int) -> float:
        """Seconds to refuse unlocks after ``failed_attempts`` failures."""
        if failed_attempts <= 0 or not self.backoff_enabled:
            return 0.0
        delay = self.unlock_backoff_base_seconds * (2 ** (failed_attempts - 1))
        return min(delay, self.unlock_backoff_max_seconds)

    @classmethod
    def from_env(cls, dotenv_path: Optional[Path] = None, **overrides) -> "VaultSettings":
        """Build settings from STRONGBOX_* variables (and a .env file).

        Keyword overrides win over the environment.
        """
        load_dotenv(dotenv_path=dotenv_path)
        values = {}

        def _env(name: str) -> Optional[str]:
            return os.environ.get(f"{_ENV_PREFIX}{name}")

        if _env("PBKDF2_ITERATIONS"):
            values["pbkdf2_iterations"] = int(_env("PBKDF2_ITERATIONS"))
        if _env("ALLOW_WEAK_ITERATIONS"):
            values["allow_weak_iterations"] = _env("ALLOW_WEAK_ITERATIONS").lower() in _TRUTHY
        if _env("MIN_MASTER_SECRET_LENGTH"):
            values["min_master_secret_length"] = int(_env("MIN_MASTER_SECRET_LENGTH"))
        if _env("AUTO_LOCK_SECONDS"):
            values["auto_lock_seconds"] = int(_env("AUTO_LOCK_SECONDS"))
        if _env("UNLOCK_BACKOFF_BASE_SECONDS"):
            values["unlock_backoff_base_seconds"] = float(_env("UNLOCK_BACKOFF_BASE_SECONDS"))
        if _env("UNLOCK_BACKOFF_MAX_SECONDS"):
            values["unlock_backoff_max_seconds"] = float(_env("UNLOCK_BACKOFF_MAX_SECONDS"))
        if _env("AUDIT_LOG_DIR"):
            values["audit_log_dir"] = Path(_env("AUDIT_LOG_DIR"))
        if _env("DB_PATH"):
            values["db_path"] = Path(_env("DB_PATH"))

        values.update(overrides)
        return cls(**values)


_settings: Optional[VaultSettings] = None


def get_settings() -> VaultSettings:
    """Get the process-wide settings, loading them from the environment once."""
    global _settings
    if _settings is None:
        _settings = VaultSettings.from_env()
    return _settings
