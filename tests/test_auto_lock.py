# Tests for the auto-lock timer
#
# Coverage:
#   - Idle timeout locks the vault (reason "timeout")
#   - touch() restarts the countdown
#   - enable/disable, set_timeout clamping
#   - Background thread lifecycle

import time

import pytest

from strongbox.core.config import VaultSettings
from strongbox.vault.auto_lock import AutoLockTimer
from strongbox.vault.vault_manager import VaultKeyManager


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def unlocked_manager(manager):
    manager.initialize_vault_key("Secret123!", "user1")
    return manager


class TestIdleTimeout:

    def test_locks_after_timeout(self, unlocked_manager, clock):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=300, clock=clock)
        clock.now = 299
        assert not timer.check_and_lock()
        assert unlocked_manager.is_vault_unlocked

        clock.now = 300
        assert timer.check_and_lock()
        assert not unlocked_manager.is_vault_unlocked

    def test_touch_resets_countdown(self, unlocked_manager, clock):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=60, clock=clock)
        clock.now = 50
        timer.touch()
        clock.now = 100
        assert not timer.check_and_lock()
        assert timer.seconds_until_lock() == 10

    def test_seconds_until_lock_floors_at_zero(self, unlocked_manager, clock):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=60, clock=clock)
        clock.now = 500
        assert timer.seconds_until_lock() == 0

    def test_nothing_to_lock_when_already_locked(self, manager, clock):
        timer = AutoLockTimer(manager, timeout_seconds=1, clock=clock)
        clock.now = 10
        assert not timer.check_and_lock()

    def test_uses_auto_lock_event(self, unlocked_manager, clock, monkeypatch):
        reasons = []
        monkeypatch.setattr(
            unlocked_manager, "lock_vault", lambda reason="manual": reasons.append(reason)
        )
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=5, clock=clock)
        clock.now = 5
        timer.check_and_lock()
        assert reasons == ["timeout"]

    def test_default_timeout_from_settings(self, store, clock):
        settings = VaultSettings(
            pbkdf2_iterations=1000, allow_weak_iterations=True, auto_lock_seconds=120,
        )
        timer = AutoLockTimer(VaultKeyManager(store, settings=settings), clock=clock)
        assert timer.timeout_seconds == 120


class TestConfiguration:

    def test_disable(self, unlocked_manager, clock):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=10, clock=clock)
        timer.disable()
        clock.now = 1000
        assert not timer.check_and_lock()
        assert unlocked_manager.is_vault_unlocked
        assert timer.seconds_until_lock() == 0

    def test_enable_restarts_countdown(self, unlocked_manager, clock):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=10, clock=clock)
        timer.disable()
        clock.now = 1000
        timer.enable()
        assert timer.enabled
        assert not timer.check_and_lock()

    @pytest.mark.parametrize("requested,expected", [(0, 1), (-5, 1), (30, 30)])
    def test_set_timeout_clamped(self, manager, clock, requested, expected):
        timer = AutoLockTimer(manager, timeout_seconds=300, clock=clock)
        timer.set_timeout(requested)
        assert timer.timeout_seconds == expected


class TestBackgroundThread:

    def test_thread_locks_idle_vault(self, unlocked_manager):
        timer = AutoLockTimer(unlocked_manager, timeout_seconds=1, poll_interval=0.05)
        timer.start()
        try:
            deadline = time.monotonic() + 5
            while unlocked_manager.is_vault_unlocked and time.monotonic() < deadline:
                time.sleep(0.05)
        finally:
            timer.stop()
        assert not unlocked_manager.is_vault_unlocked

    def test_start_is_idempotent_and_stop_joins(self, manager):
        timer = AutoLockTimer(manager, timeout_seconds=60, poll_interval=0.05)
        timer.start()
        first = timer._thread
        timer.start()
        assert timer._thread is first
        timer.stop()
        assert not first.is_alive()
