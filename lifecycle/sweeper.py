"""
Background expiry sweep.

Reads alone would expire bans eventually, but only for customers someone
looks at. The sweep walks every due ban on a timer and expires it through the
coordinator, the same path a read takes, so it shares the per-customer lock
and fires the same BanExpired notification. Each tick of the background loop
also re-sends notices that failed earlier, when a notifier is attached.

Only one sweep runs at a time: a run must take the "ban-expiry-sweep" lease
from the data store, which every process sharing the store sees.
"""

import logging
import socket
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

from customers.ledger import BanLedger
from shared.clock import Clock, SystemClock
from shared.data_store import DataStore
from shared.errors import BanServiceError
from shared.models import BanRecord

from lifecycle.coordinator import BanCoordinator
from lifecycle.notifier import BanNotifier

logger = logging.getLogger("expiry_sweeper")

LEASE_NAME = "ban-expiry-sweep"


@dataclass
class SweepResult:
    """What one sweep run did."""
    started_at: datetime
    skipped: bool = False
    expired: list[BanRecord] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def expired_count(self) -> int:
        return len(self.expired)


class ExpirySweeper:
    """
    Periodically expires due bans.

    Example:
        sweeper = ExpirySweeper(coordinator, ledger, store, interval_seconds=300)
        sweeper.start()
        ...
        sweeper.stop()
    """

    def __init__(
        self,
        coordinator: BanCoordinator,
        ledger: BanLedger,
        data_store: DataStore,
        clock: Optional[Clock] = None,
        interval_seconds: float = 300.0,
        lease_seconds: float = 600.0,
        owner: Optional[str] = None,
        notifier: Optional[BanNotifier] = None,
    ):
        self.coordinator = coordinator
        self.ledger = ledger
        self.data_store = data_store
        self.clock = clock or SystemClock()
        self.interval_seconds = interval_seconds
        self.lease = timedelta(seconds=lease_seconds)
        self.owner = owner or f"{socket.gethostname()}-{uuid4().hex[:8]}"
        self.notifier = notifier

        self._run_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> SweepResult:
        """
        Expire every due ban, unless another sweep is already running.
        """
        result = SweepResult(started_at=self.clock.now())

        if not self._run_lock.acquire(blocking=False):
            logger.info("Sweep already running in this process, skipping")
            result.skipped = True
            return result
        try:
            if not self.data_store.acquire_lease(LEASE_NAME, self.owner, self.lease, result.started_at):
                logger.info("Sweep lease held by another worker, skipping")
                result.skipped = True
                return result
            try:
                self._sweep(result)
            finally:
                self.data_store.release_lease(LEASE_NAME, self.owner)
        finally:
            self._run_lock.release()

        logger.info(f"Sweep finished: {result.expired_count} expired, {len(result.errors)} errors")
        return result

    def _sweep(self, result: SweepResult) -> None:
        due = self.ledger.due_for_expiry()
        logger.debug(f"Sweep found {len(due)} due bans")
        for ban in due:
            try:
                expired = self.coordinator.expire_ban(ban.customer_id)
            except BanServiceError as e:
                logger.error(f"Could not expire ban {ban.id} for {ban.customer_id}: {e}")
                result.errors[ban.customer_id] = str(e)
                continue
            # None means a concurrent read already expired it
            if expired is not None:
                result.expired.append(expired)

    # =========================================================================
    # Background thread
    # =========================================================================

    def start(self) -> None:
        if self.is_running:
            logger.warning("ExpirySweeper already started")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="ban-expiry-sweep", daemon=True)
        self._thread.start()
        logger.info(f"ExpirySweeper started, every {self.interval_seconds:g}s")

    def tick(self) -> None:
        """One pass of the background loop: sweep, then retry failed notices."""
        try:
            self.run_once()
        except Exception:
            logger.exception("Expiry sweep failed")

        if self.notifier is None or not self.notifier.pending_notices():
            return
        try:
            self.notifier.retry_failed()
        except Exception:
            logger.exception("Notice retry failed")

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.tick()
            self._stop.wait(self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("ExpirySweeper stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
