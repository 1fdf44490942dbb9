"""
Tests for the manual clock, per-customer locks, and settings.
"""

import threading
import time
from datetime import datetime, timedelta, timezone

from shared.clock import ManualClock, SystemClock
from shared.config import Settings
from shared.locks import KeyedLock


class TestClock:

    def test_manual_clock_advance(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        clock = ManualClock(start)

        assert clock.advance(days=8) == start + timedelta(days=8)
        assert clock.now() == start + timedelta(days=8)

    def test_manual_clock_set(self):
        clock = ManualClock()
        moment = datetime(2030, 6, 1, tzinfo=timezone.utc)
        clock.set(moment)
        assert clock.now() == moment

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo is timezone.utc


class TestKeyedLock:

    def test_reentrant(self):
        locks = KeyedLock()
        with locks.hold("cust-001"):
            with locks.hold("cust-001"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_entries_released_after_use(self):
        locks = KeyedLock()

        def worker(i):
            for n in range(50):
                with locks.hold(f"cust-{(i * 50 + n) % 20:03d}"):
                    pass

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(locks) == 0

    def test_entry_kept_while_waiting(self):
        locks = KeyedLock()
        acquired = threading.Event()

        def waiter():
            with locks.hold("cust-001"):
                acquired.set()

        with locks.hold("cust-001"):
            t = threading.Thread(target=waiter)
            t.start()
            # The waiter has registered but cannot get in yet
            assert not acquired.wait(0.05)
        t.join()

        assert acquired.is_set()
        assert len(locks) == 0

    def test_same_key_serializes(self):
        locks = KeyedLock()
        order = []

        def worker(name):
            with locks.hold("cust-001"):
                order.append(f"{name}-in")
                time.sleep(0.05)
                order.append(f"{name}-out")

        threads = [threading.Thread(target=worker, args=(n,)) for n in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # No interleaving: each "in" is directly followed by its own "out"
        assert order[0].split("-")[0] == order[1].split("-")[0]
        assert order[2].split("-")[0] == order[3].split("-")[0]

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold("cust-002"):
                entered.set()

        with locks.hold("cust-001"):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(1.0)
            t.join()


class TestSettings:

    def test_defaults(self):
        settings = Settings()

        assert settings.default_country_code == "60"
        assert settings.reason_max_length == 500
        assert settings.notification_channels == ["whatsapp"]

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BANS_SWEEP_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("BANS_LOG_LEVEL", "debug")

        settings = Settings()

        assert settings.sweep_interval_seconds == 60
        assert settings.log_level == "DEBUG"
