"""
Ban ledger.

The ledger is the source of truth for whether a customer is banned. It keeps
an append-only history of BanRecords per customer: a record is created active
by impose_ban and closed exactly once by lift_ban or expire_ban.

Design decisions:
- Every mutation runs under the customer's lock from a shared KeyedLock, and
  the store re-checks the "no active ban" precondition on insert
- Expiry is evaluated lazily: current_active_ban expires a due ban before
  answering. The periodic sweep calls the same expire_ban, so both paths end
  in the same state, and expiring twice is a no-op
- Expiry listeners let the coordinator react to an expiry no matter which
  path triggered it
"""

import logging
from typing import Callable, Optional

from shared.clock import Clock, SystemClock
from shared.data_store import DataStore
from shared.errors import ConflictError, IntegrityError, NotFoundError, ValidationError
from shared.locks import KeyedLock
from shared.models import BanClosure, BanRecord

logger = logging.getLogger("ban_ledger")

ExpiryListener = Callable[[BanRecord], None]


class BanLedger:
    """
    Append-only ban history with lazy expiry.

    Example:
        ledger = BanLedger(store, clock=ManualClock())
        ledger.impose_ban("cust-001", "No-show x3", 7, "staff-01")
        ledger.current_active_ban("cust-001")   # the ban
        clock.advance(days=8)
        ledger.current_active_ban("cust-001")   # None, closed as expired
    """

    def __init__(
        self,
        data_store: DataStore,
        clock: Optional[Clock] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.data_store = data_store
        self.clock = clock or SystemClock()
        self.locks = locks or KeyedLock()
        self._expiry_listeners: list[ExpiryListener] = []

    def add_expiry_listener(self, listener: ExpiryListener) -> None:
        """
        Register a callback run after each expiry, still under the customer lock.
        """
        self._expiry_listeners.append(listener)

    # =========================================================================
    # Queries
    # =========================================================================

    def _stored_active_ban(self, customer_id: str) -> Optional[BanRecord]:
        active = self.data_store.get_active_bans_for(customer_id)
        if len(active) > 1:
            ids = ", ".join(sorted(b.id for b in active))
            logger.critical(
                f"INTEGRITY VIOLATION: customer {customer_id} has {len(active)} active bans ({ids})"
            )
            raise IntegrityError(f"Customer {customer_id} has {len(active)} active bans")
        return active[0] if active else None

    def current_active_ban(self, customer_id: str) -> Optional[BanRecord]:
        """
        The customer's active ban, or None.

        A ban whose duration has run out is expired first, so callers never
        see a stale active ban.

        Raises:
            IntegrityError: If more than one active ban is stored
        """
        with self.locks.hold(customer_id):
            ban = self._stored_active_ban(customer_id)
            if ban is not None and ban.is_due(self.clock.now()):
                self.expire_ban(customer_id)
                return None
            return ban

    def history(self, customer_id: str) -> list[BanRecord]:
        """All bans for a customer, oldest first."""
        return self.data_store.get_bans_for_customer(customer_id)

    def active_bans(self) -> list[BanRecord]:
        """Every stored active ban, including ones that are due but not yet swept."""
        return sorted(self.data_store.get_active_bans(), key=lambda b: b.banned_at)

    def due_for_expiry(self) -> list[BanRecord]:
        """Active, non-permanent bans whose duration has run out."""
        now = self.clock.now()
        return [ban for ban in self.active_bans() if ban.is_due(now)]

    # =========================================================================
    # Transitions
    # =========================================================================

    def impose_ban(
        self,
        customer_id: str,
        reason: str,
        duration_days: int,
        banned_by_id: str,
    ) -> BanRecord:
        """
        Create a new active ban.

        Args:
            duration_days: Length of the ban; 0 means permanent

        Raises:
            ValidationError: If the reason is empty or the duration negative
            NotFoundError: If the customer does not exist
            ConflictError: If the customer already has an active ban
        """
        if not reason or not reason.strip():
            raise ValidationError("A ban needs a reason")
        if duration_days < 0:
            raise ValidationError("Ban duration cannot be negative")

        with self.locks.hold(customer_id):
            if self.current_active_ban(customer_id) is not None:
                logger.warning(f"Customer {customer_id} is already banned")
                raise ConflictError(f"Customer {customer_id} already has an active ban")

            ban = BanRecord(
                customer_id=customer_id,
                reason=reason.strip(),
                banned_at=self.clock.now(),
                duration_days=duration_days,
                banned_by_id=banned_by_id,
            )
            self.data_store.insert_ban(ban)

        kind = "permanent" if ban.is_permanent else f"{duration_days}-day"
        logger.info(f"Imposed {kind} ban {ban.id} on {customer_id} by {banned_by_id}")
        return ban

    def lift_ban(self, customer_id: str, removed_by_id: str) -> BanRecord:
        """
        Close the active ban on behalf of a staff member.

        Raises:
            NotFoundError: If the customer has no active ban
        """
        with self.locks.hold(customer_id):
            ban = self.current_active_ban(customer_id)
            if ban is None:
                logger.warning(f"No active ban to lift for customer {customer_id}")
                raise NotFoundError(f"No active ban found for customer {customer_id}")

            closed = ban.closed(
                at=self.clock.now(),
                closure=BanClosure.LIFTED,
                removed_by_id=removed_by_id,
            )
            self.data_store.close_ban(closed)

        logger.info(f"Lifted ban {ban.id} on {customer_id} by {removed_by_id}")
        return closed

    def expire_ban(self, customer_id: str) -> Optional[BanRecord]:
        """
        Close the active ban if its duration has run out.

        Returns the expired record, or None when there is nothing to expire:
        no active ban, a permanent ban, or a ban that is not yet due. Calling
        it again after an expiry is therefore harmless.
        """
        with self.locks.hold(customer_id):
            ban = self._stored_active_ban(customer_id)
            now = self.clock.now()
            if ban is None or not ban.is_due(now):
                return None

            closed = ban.closed(at=now, closure=BanClosure.EXPIRED)
            self.data_store.close_ban(closed)
            logger.info(f"Ban {ban.id} on {customer_id} expired (ended {ban.ends_at.isoformat()})")

            for listener in self._expiry_listeners:
                listener(closed)
            return closed
