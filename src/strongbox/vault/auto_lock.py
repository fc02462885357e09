# Strongbox - Auto-Lock Timer
#
# Locks the vault after a period without user activity.
# Callers report activity with touch(); a daemon thread (or an explicit
# check_and_lock() call) locks the vault once the idle time exceeds the
# timeout. Locking goes through VaultKeyManager.lock_vault(reason="timeout"),
# so the key is zeroed exactly as on a manual lock.

import logging
import threading
import time
from typing import Callable, Optional

from .vault_manager import VaultKeyManager

logger = logging.getLogger(__name__)

MIN_TIMEOUT_SECONDS = 1


class AutoLockTimer:
    """Idle timer bound to one VaultKeyManager."""

    def __init__(
        self,
        manager: VaultKeyManager,
        timeout_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 1.0,
    ):
        self._manager = manager
        if timeout_seconds is None:
            timeout_seconds = manager.settings.auto_lock_seconds
        self._timeout = max(MIN_TIMEOUT_SECONDS, int(timeout_seconds))
        self._clock = clock
        self._poll_interval = poll_interval

        self._lock = threading.Lock()
        self._last_activity = clock()
        self._enabled = True

        self._running = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # ── Activity ─────────────────────────────────────────────────

    def touch(self) -> None:
        """Record user activity, restarting the idle countdown."""
        with self._lock:
            self._last_activity = self._clock()

    def seconds_until_lock(self) -> float:
        """Idle seconds left before the vault locks (0 when due or disabled)."""
        with self._lock:
            if not self._enabled:
                return 0.0
            idle = self._clock() - self._last_activity
            return max(0.0, self._timeout - idle)

    def check_and_lock(self) -> bool:
        """Lock the vault if it has been idle too long. Returns True if it locked."""
        with self._lock:
            if not self._enabled:
                return False
            idle = self._clock() - self._last_activity
            expired = idle >= self._timeout

        if not expired or not self._manager.is_vault_unlocked:
            return False

        logger.info("Auto-locking vault after %.0fs idle", idle)
        self._manager.lock_vault(reason="timeout")
        return True

    # ── Configuration ────────────────────────────────────────────

    @property
    def timeout_seconds(self) -> int:
        return self._timeout

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_timeout(self, seconds: int) -> None:
        """Change the idle timeout (clamped to at least one second)."""
        with self._lock:
            self._timeout = max(MIN_TIMEOUT_SECONDS, int(seconds))

    def enable(self) -> None:
        with self._lock:
            self._enabled = True
            self._last_activity = self._clock()

    def disable(self) -> None:
        with self._lock:
            self._enabled = False

    # ── Lifecycle ────────────────────────────────────────────────

    def start(self) -> None:
        """Start the background idle-check thread."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self.touch()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name="vault-auto-lock",
            daemon=True,
        )
        self._thread.start()
        logger.info("AutoLockTimer started (timeout=%ds)", self._timeout)

    def stop(self) -> None:
        """Stop the background thread. Does not lock the vault."""
        self._running = False
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
        logger.info("AutoLockTimer stopped")

    def _watch_loop(self) -> None:
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                self.check_and_lock()
            except Exception:
                logger.exception("Auto-lock check failed")
