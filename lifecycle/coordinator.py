"""
Ban lifecycle coordinator.

Orchestrates the customer state machine

    Active --impose--> Banned --lift--> Active
                       Banned --expire--> Active

by driving the ledger and the registry, then publishing an event that the
notifier turns into a message.

Design decisions:
- The coordinator holds the customer's lock (shared with the ledger) across
  check-then-act, so concurrent imposes on one customer give exactly one
  success and ConflictErrors for the rest
- Preconditions are checked before any mutation: impose on a banned
  customer and lift on an active one fail with ConflictError
- The ban is authoritative; notification happens after the commit and its
  failure never rolls the ban back
- Events are only published once the customer's lock is released, so a slow
  channel never holds up other operations on that customer
- Expiry goes through the ledger's expire_ban whichever path finds it (a
  read or the sweep); the coordinator hears about it through an expiry
  listener, updates the status there, and queues the event until the lock
  is released
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from customers.ledger import BanLedger
from customers.registry import CustomerRegistry
from shared.errors import ConflictError, ValidationError
from shared.models import (
    BanInfo,
    BannedCustomer,
    BanRecord,
    CustomerDetail,
    CustomerStatus,
)

from lifecycle.event_bus import EventBus
from lifecycle.events import ban_expired, ban_imposed, ban_lifted

logger = logging.getLogger("ban_coordinator")


class BanCoordinator:
    """
    Entry point for ban operations.

    Example:
        coordinator = BanCoordinator(registry, ledger, event_bus)
        coordinator.impose_ban("cust-001", "Repeated no-shows", 7, "staff-01")
        coordinator.get_customer_status("cust-001")   # CustomerStatus.BANNED
        coordinator.lift_ban("cust-001", "staff-02")
    """

    def __init__(
        self,
        registry: CustomerRegistry,
        ledger: BanLedger,
        event_bus: EventBus,
        reason_max_length: int = 500,
    ):
        self.registry = registry
        self.ledger = ledger
        self.event_bus = event_bus
        self.reason_max_length = reason_max_length
        # Expired bans waiting to be published, per thread
        self._unpublished = threading.local()
        self.ledger.add_expiry_listener(self._on_ban_expired)

    # =========================================================================
    # Transitions
    # =========================================================================

    def impose_ban(
        self,
        customer_id: str,
        reason: str,
        duration_days: int,
        staff_id: str,
    ) -> BanRecord:
        """
        Ban a customer.

        Args:
            duration_days: Length of the ban in days; 0 bans permanently
            staff_id: Staff member imposing the ban

        Raises:
            ValidationError: Bad reason or duration
            NotFoundError: Unknown customer
            ConflictError: Customer is already banned
        """
        self._validate_ban_request(reason, duration_days)
        logger.info(f"Banning customer {customer_id} by staff {staff_id}")

        with self._customer_lock(customer_id):
            self.registry.get_by_id(customer_id)
            if self.ledger.current_active_ban(customer_id) is not None:
                logger.warning(f"Ban rejected, customer {customer_id} is already banned")
                raise ConflictError(f"Customer {customer_id} is already banned")

            ban = self.ledger.impose_ban(customer_id, reason, duration_days, staff_id)
            self.registry.set_status(customer_id, CustomerStatus.BANNED)

        self.event_bus.publish(ban_imposed(ban))
        return ban

    def lift_ban(self, customer_id: str, staff_id: str) -> BanRecord:
        """
        Lift a customer's active ban.

        Raises:
            NotFoundError: Unknown customer
            ConflictError: Customer is not currently banned
        """
        logger.info(f"Removing ban for customer {customer_id} by staff {staff_id}")

        with self._customer_lock(customer_id):
            self.registry.get_by_id(customer_id)
            if self.ledger.current_active_ban(customer_id) is None:
                logger.warning(f"Unban rejected, customer {customer_id} is not banned")
                raise ConflictError(f"Customer {customer_id} is not currently banned")

            ban = self.ledger.lift_ban(customer_id, staff_id)
            self.registry.set_status(customer_id, CustomerStatus.ACTIVE)

        self.event_bus.publish(ban_lifted(ban))
        return ban

    def expire_ban(self, customer_id: str) -> Optional[BanRecord]:
        """
        Expire the customer's ban if it is due. System path, used by the sweep.

        Returns:
            The expired record, or None if there was nothing to expire
        """
        try:
            return self.ledger.expire_ban(customer_id)
        finally:
            self._publish_expired()

    def _on_ban_expired(self, ban: BanRecord) -> None:
        # Runs under the customer lock, right after the ledger closed the ban
        self.registry.set_status(ban.customer_id, CustomerStatus.ACTIVE)
        self._expired_queue().append(ban)

    def _expired_queue(self) -> list[BanRecord]:
        queue = getattr(self._unpublished, "bans", None)
        if queue is None:
            queue = self._unpublished.bans = []
        return queue

    def _publish_expired(self) -> None:
        queue = self._expired_queue()
        while queue:
            self.event_bus.publish(ban_expired(queue.pop(0)))

    @contextmanager
    def _customer_lock(self, customer_id: str) -> Iterator[None]:
        """Hold the customer's lock, then publish any expiry it uncovered."""
        try:
            with self.ledger.locks.hold(customer_id):
                yield
        finally:
            self._publish_expired()

    def _validate_ban_request(self, reason: str, duration_days: int) -> None:
        if not reason or not reason.strip():
            raise ValidationError("A ban needs a reason")
        if len(reason) > self.reason_max_length:
            raise ValidationError(f"Reason cannot exceed {self.reason_max_length} characters")
        if isinstance(duration_days, bool) or not isinstance(duration_days, int):
            raise ValidationError("Duration must be a whole number of days")
        if duration_days < 0:
            raise ValidationError("Duration must be a non-negative number")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_customer_status(self, customer_id: str) -> CustomerStatus:
        """
        Current status, after applying any due expiry.

        The ledger decides; if the stored status disagrees it is corrected.

        Raises:
            NotFoundError: Unknown customer
        """
        with self._customer_lock(customer_id):
            self.registry.get_by_id(customer_id)
            active = self.ledger.current_active_ban(customer_id)
            status = CustomerStatus.BANNED if active else CustomerStatus.ACTIVE

            # Re-read: a lazy expiry above may already have updated it
            customer = self.registry.get_by_id(customer_id)
            if customer.status != status:
                logger.warning(
                    f"Customer {customer_id} stored as {customer.status} but ledger says {status.value}; correcting"
                )
                self.registry.set_status(customer_id, status)
            return status

    def get_ban_history(self, customer_id: str) -> list[BanRecord]:
        """
        All of a customer's bans, oldest first.

        Raises:
            NotFoundError: Unknown customer
        """
        self.registry.get_by_id(customer_id)
        with self._customer_lock(customer_id):
            # Applies a due expiry so the latest record is up to date
            self.ledger.current_active_ban(customer_id)
            return self.ledger.history(customer_id)

    def get_customer_detail(self, customer_id: str) -> CustomerDetail:
        """
        A customer with their current ban and full history.

        Raises:
            NotFoundError: Unknown customer
        """
        self.get_customer_status(customer_id)
        with self._customer_lock(customer_id):
            customer = self.registry.get_by_id(customer_id)
            active = self.ledger.current_active_ban(customer_id)
            return CustomerDetail(
                customer=customer,
                ban_info=BanInfo.from_record(active) if active else None,
                ban_history=self.ledger.history(customer_id),
            )

    def get_banned_customers(self) -> list[BannedCustomer]:
        """Customers with an active ban, oldest ban first."""
        banned = []
        for ban in self.ledger.active_bans():
            with self._customer_lock(ban.customer_id):
                current = self.ledger.current_active_ban(ban.customer_id)
                if current is None:
                    continue
                customer = self.registry.get_by_id(current.customer_id)
            banned.append(BannedCustomer(
                customer_id=customer.id,
                name=customer.name,
                phone=customer.phone,
                reason=current.reason,
                banned_at=current.banned_at,
                duration_days=current.duration_days,
                ends_at=current.ends_at,
                banned_by_id=current.banned_by_id,
            ))
        return banned
