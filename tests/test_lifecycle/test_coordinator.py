"""
Tests for the BanCoordinator.

These tests verify the customer state machine end to end: preconditions,
status changes, the events published after each transition, expiry through
reads, and the status queries.
"""

import threading
import pytest

from lifecycle.coordinator import BanCoordinator
from lifecycle.events import EventTypes
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import BanClosure, CustomerStatus


def event_types(coordinator: BanCoordinator) -> list[str]:
    return [e.event_type for e in coordinator.event_bus.get_event_log()]


class TestImposeBan:

    def test_impose(self, coordinator: BanCoordinator, alice_customer_id):
        ban = coordinator.impose_ban(alice_customer_id, "Three no-shows", 7, "staff-01")

        assert ban.is_active
        assert ban.banned_by_id == "staff-01"
        assert coordinator.get_customer_status(alice_customer_id) == CustomerStatus.BANNED
        assert coordinator.registry.get_by_id(alice_customer_id).is_banned

    def test_publishes_ban_imposed(self, coordinator: BanCoordinator, alice_customer_id):
        ban = coordinator.impose_ban(alice_customer_id, "Three no-shows", 7, "staff-01")

        event = coordinator.event_bus.get_event_log()[-1]
        assert event.event_type == EventTypes.BAN_IMPOSED
        assert event.payload["ban_id"] == ban.id
        assert event.payload["customer_id"] == alice_customer_id
        assert event.payload["ends_at"] == ban.ends_at

    def test_event_stamped_with_ban_time(self, coordinator: BanCoordinator, clock, alice_customer_id):
        clock.advance(days=2)
        ban = coordinator.impose_ban(alice_customer_id, "No-show", 7, "staff-01")
        clock.advance(hours=3)
        lifted = coordinator.lift_ban(alice_customer_id, "staff-02")

        imposed_event, lifted_event = coordinator.event_bus.get_event_log()
        assert imposed_event.timestamp == ban.banned_at
        assert lifted_event.timestamp == lifted.removed_at == clock.now()

    def test_already_banned(self, coordinator: BanCoordinator, bob_customer_id):
        with pytest.raises(ConflictError):
            coordinator.impose_ban(bob_customer_id, "Again", 7, "staff-01")

        assert len(coordinator.get_ban_history(bob_customer_id)) == 1
        assert event_types(coordinator) == []

    def test_unknown_customer(self, coordinator: BanCoordinator):
        with pytest.raises(NotFoundError):
            coordinator.impose_ban("nonexistent-id", "No-show", 7, "staff-01")

    @pytest.mark.parametrize("reason,duration", [
        ("", 7),
        ("   ", 7),
        ("x" * 501, 7),
        ("No-show", -1),
        ("No-show", 1.5),
        ("No-show", True),
    ])
    def test_invalid_request(self, coordinator: BanCoordinator, alice_customer_id, reason, duration):
        with pytest.raises(ValidationError):
            coordinator.impose_ban(alice_customer_id, reason, duration, "staff-01")

        assert coordinator.get_customer_status(alice_customer_id) == CustomerStatus.ACTIVE
        assert coordinator.get_ban_history(alice_customer_id) == []

    def test_reason_at_limit(self, coordinator: BanCoordinator, alice_customer_id):
        ban = coordinator.impose_ban(alice_customer_id, "x" * 500, 1, "staff-01")
        assert len(ban.reason) == 500

    def test_concurrent_imposes_one_wins(self, coordinator: BanCoordinator, alice_customer_id):
        results, conflicts = [], []
        barrier = threading.Barrier(6)

        def attempt(i):
            barrier.wait()
            try:
                results.append(coordinator.impose_ban(alice_customer_id, f"Reason {i}", 7, f"staff-{i}"))
            except ConflictError as e:
                conflicts.append(e)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 1
        assert len(conflicts) == 5
        assert len(coordinator.get_ban_history(alice_customer_id)) == 1
        assert event_types(coordinator) == [EventTypes.BAN_IMPOSED]


class TestLiftBan:

    def test_lift(self, coordinator: BanCoordinator, bob_customer_id):
        closed = coordinator.lift_ban(bob_customer_id, "staff-09")

        assert closed.closure == BanClosure.LIFTED
        assert closed.removed_by_id == "staff-09"
        assert coordinator.get_customer_status(bob_customer_id) == CustomerStatus.ACTIVE
        assert event_types(coordinator) == [EventTypes.BAN_LIFTED]

    def test_lift_not_banned(self, coordinator: BanCoordinator, alice_customer_id):
        with pytest.raises(ConflictError):
            coordinator.lift_ban(alice_customer_id, "staff-01")

    def test_lift_unknown_customer(self, coordinator: BanCoordinator):
        with pytest.raises(NotFoundError):
            coordinator.lift_ban("nonexistent-id", "staff-01")

    def test_permanent_ban_lifted_by_other_staff(self, coordinator: BanCoordinator, alice_customer_id):
        coordinator.impose_ban(alice_customer_id, "Abusive behaviour", 0, "staffA")
        coordinator.lift_ban(alice_customer_id, "staffB")

        [ban] = coordinator.get_ban_history(alice_customer_id)
        assert ban.banned_by_id == "staffA"
        assert ban.removed_by_id == "staffB"
        assert ban.closure == BanClosure.LIFTED

    def test_impose_lift_impose(self, coordinator: BanCoordinator, alice_customer_id):
        coordinator.impose_ban(alice_customer_id, "First", 7, "staff-01")
        coordinator.lift_ban(alice_customer_id, "staff-02")
        assert coordinator.get_customer_status(alice_customer_id) == CustomerStatus.ACTIVE

        coordinator.impose_ban(alice_customer_id, "Second", 3, "staff-01")

        history = coordinator.get_ban_history(alice_customer_id)
        assert [b.reason for b in history] == ["First", "Second"]
        assert [b.is_active for b in history] == [False, True]
        assert coordinator.get_customer_status(alice_customer_id) == CustomerStatus.BANNED


class TestExpiry:

    def test_read_expires_due_ban(self, coordinator: BanCoordinator, eric_customer_id):
        assert coordinator.get_customer_status(eric_customer_id) == CustomerStatus.ACTIVE

        assert coordinator.registry.get_by_id(eric_customer_id).status == CustomerStatus.ACTIVE
        assert event_types(coordinator) == [EventTypes.BAN_EXPIRED]
        closed = coordinator.get_ban_history(eric_customer_id)[-1]
        assert closed.closure == BanClosure.EXPIRED

    def test_expire_ban_system_path(self, coordinator: BanCoordinator, clock, bob_customer_id):
        assert coordinator.expire_ban(bob_customer_id) is None

        clock.advance(days=8)
        expired = coordinator.expire_ban(bob_customer_id)

        assert expired.removed_by_id is None
        assert coordinator.registry.get_by_id(bob_customer_id).status == CustomerStatus.ACTIVE
        assert coordinator.expire_ban(bob_customer_id) is None
        assert event_types(coordinator) == [EventTypes.BAN_EXPIRED]

    def test_permanent_ban_never_expires(self, coordinator: BanCoordinator, clock, chandra_customer_id):
        clock.advance(days=3650)

        assert coordinator.get_customer_status(chandra_customer_id) == CustomerStatus.BANNED
        assert coordinator.expire_ban(chandra_customer_id) is None

    def test_lift_after_expiry_is_conflict(self, coordinator: BanCoordinator, clock, bob_customer_id):
        clock.advance(days=8)
        with pytest.raises(ConflictError):
            coordinator.lift_ban(bob_customer_id, "staff-01")

        # The expiry found on the way is still announced
        assert event_types(coordinator) == [EventTypes.BAN_EXPIRED]

    def test_expiry_published_after_lock_released(self, coordinator: BanCoordinator, eric_customer_id):
        other_thread_done = []

        def handler(event):
            # Another request for the same customer while the notice is going out
            worker = threading.Thread(
                target=coordinator.impose_ban,
                args=(eric_customer_id, "Left without paying again", 7, "staff-02"),
            )
            worker.start()
            worker.join(timeout=2.0)
            other_thread_done.append(not worker.is_alive())

        coordinator.event_bus.subscribe(EventTypes.BAN_EXPIRED, handler)

        assert coordinator.get_customer_status(eric_customer_id) == CustomerStatus.ACTIVE

        assert other_thread_done == [True]
        assert coordinator.get_customer_status(eric_customer_id) == CustomerStatus.BANNED

    def test_sweep_path_publishes_after_lock_released(self, coordinator: BanCoordinator, clock, bob_customer_id):
        lock_free = []

        def handler(event):
            acquired = threading.Event()

            def take_lock():
                with coordinator.ledger.locks.hold(event.payload["customer_id"]):
                    acquired.set()

            threading.Thread(target=take_lock).start()
            lock_free.append(acquired.wait(timeout=2.0))

        coordinator.event_bus.subscribe(EventTypes.BAN_EXPIRED, handler)
        clock.advance(days=8)

        assert coordinator.expire_ban(bob_customer_id) is not None
        assert lock_free == [True]


class TestQueries:

    def test_status_corrects_stale_record(self, coordinator: BanCoordinator, alice_customer_id, caplog):
        coordinator.registry.set_status(alice_customer_id, CustomerStatus.BANNED)

        assert coordinator.get_customer_status(alice_customer_id) == CustomerStatus.ACTIVE
        assert coordinator.registry.get_by_id(alice_customer_id).status == CustomerStatus.ACTIVE
        assert "correcting" in caplog.text

    def test_status_unknown_customer(self, coordinator: BanCoordinator):
        with pytest.raises(NotFoundError):
            coordinator.get_customer_status("nonexistent-id")

    def test_history_unknown_customer(self, coordinator: BanCoordinator):
        with pytest.raises(NotFoundError):
            coordinator.get_ban_history("nonexistent-id")

    def test_history_oldest_first(self, coordinator: BanCoordinator, dewi_customer_id):
        history = coordinator.get_ban_history(dewi_customer_id)

        assert [b.id for b in history] == ["ban-003", "ban-004"]
        assert [b.closure for b in history] == [BanClosure.LIFTED, BanClosure.EXPIRED]

    def test_customer_detail(self, coordinator: BanCoordinator, bob_customer_id):
        detail = coordinator.get_customer_detail(bob_customer_id)

        assert detail.customer.name == "Bob Lim"
        assert detail.ban_info.id == "ban-001"
        assert detail.ban_info.ends_at == detail.ban_history[0].ends_at
        assert len(detail.ban_history) == 1

    def test_customer_detail_not_banned(self, coordinator: BanCoordinator, dewi_customer_id):
        detail = coordinator.get_customer_detail(dewi_customer_id)

        assert detail.ban_info is None
        assert len(detail.ban_history) == 2

    def test_banned_customers(self, coordinator: BanCoordinator):
        banned = coordinator.get_banned_customers()

        # Eric's ban is due, so the read expires it instead of listing it
        assert [b.customer_id for b in banned] == ["cust-003", "cust-002"]
        assert banned[0].ends_at is None
        assert banned[1].name == "Bob Lim"
