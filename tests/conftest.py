"""
Shared pytest fixtures for the Strongbox test suite.

Autouse fixtures below isolate tests from live data:
  - Audit logger -> temp directory  (no test events in ./audit_logs)
  - Settings     -> fresh per test  (no leaked STRONGBOX_* singleton)

Key derivation runs with a low iteration count through the explicit
``allow_weak_iterations`` override so the suite stays fast.
"""

import pytest

from strongbox.core.config import VaultSettings
from strongbox.vault.storage import InMemoryKeyStore
from strongbox.vault.vault_manager import VaultKeyManager

FAST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path, monkeypatch):
    """Redirect the global AuditLogger to a temp directory for every test.

    Without this, any test that (directly or indirectly) calls
    ``get_audit_logger().log_event(...)`` writes into the real
    ``./audit_logs/`` directory.
    """
    import strongbox.core.audit_log as audit_mod

    # Reset the singleton so the next call to get_audit_logger() creates
    # a fresh instance pointing at the temp directory.
    old_logger = audit_mod._audit_logger
    audit_mod._audit_logger = None

    orig_init = audit_mod.AuditLogger.__init__

    def patched_init(self, log_dir=None):
        orig_init(self, log_dir=log_dir or tmp_path / "audit_logs")

    monkeypatch.setattr(audit_mod.AuditLogger, "__init__", patched_init)

    yield

    audit_mod._audit_logger = old_logger


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Drop the cached settings singleton so env changes in one test don't leak."""
    import strongbox.core.config as config_mod

    monkeypatch.setattr(config_mod, "_settings", None)
    yield


@pytest.fixture
def fast_settings():
    """Settings with cheap key derivation and back-off disabled."""
    return VaultSettings(
        pbkdf2_iterations=FAST_ITERATIONS,
        allow_weak_iterations=True,
        unlock_backoff_base_seconds=0,
    )


@pytest.fixture
def store():
    return InMemoryKeyStore()


@pytest.fixture
def manager(store, fast_settings):
    """VaultKeyManager over an in-memory store."""
    return VaultKeyManager(store, settings=fast_settings)
