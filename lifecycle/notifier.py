"""
Ban notifier.

Subscribes to lifecycle events and tells the customer about them:

    BanImposed -> "ban-notice"
    BanLifted  -> "unban-notice"
    BanExpired -> "ban-expired"

Delivery is best-effort. A failed send is kept as a pending BanNotice and
retried out-of-band by retry_failed(), until it succeeds or runs out of
attempts.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from customers.registry import CustomerRegistry
from notifications.channels import ChannelType
from notifications.dispatcher import NotificationDispatcher
from notifications.templates import BAN_EXPIRED, BAN_NOTICE, UNBAN_NOTICE
from shared.errors import UnsupportedChannelError
from shared.models import Customer, MessageDeliveryStatus

from lifecycle.event_bus import Event, EventBus
from lifecycle.events import EventTypes

logger = logging.getLogger("ban_notifier")

TEMPLATE_FOR_EVENT = {
    EventTypes.BAN_IMPOSED: BAN_NOTICE,
    EventTypes.BAN_LIFTED: UNBAN_NOTICE,
    EventTypes.BAN_EXPIRED: BAN_EXPIRED,
}

DATE_FORMAT = "%d %b %Y"


@dataclass
class BanNotice:
    """A notification still owed to a customer."""
    customer_id: str
    template_name: str
    parameters: dict[str, Any]
    channel: str
    attempts: int = 0
    last_error: Optional[str] = None
    statuses: list[MessageDeliveryStatus] = field(default_factory=list)


def recipient_for(customer: Customer, channel: str) -> str:
    """Email channels go to the email address, everything else to the phone."""
    if channel == ChannelType.EMAIL:
        return customer.email
    return customer.phone


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def notice_parameters(event: Event, customer: Customer) -> dict[str, Any]:
    """Template parameters for an event."""
    payload = event.payload
    if event.event_type == EventTypes.BAN_IMPOSED:
        ends_at = payload.get("ends_at")
        return {
            "customer_name": customer.name,
            "reason": payload["reason"],
            "ban_term": f"until {_format_date(ends_at)}" if ends_at else "permanently",
        }
    if event.event_type == EventTypes.BAN_EXPIRED:
        return {
            "customer_name": customer.name,
            "ended_on": _format_date(payload.get("ends_at") or payload.get("removed_at")),
        }
    return {"customer_name": customer.name}


class BanNotifier:
    """
    Turns lifecycle events into delivered messages.

    Example:
        notifier = BanNotifier(bus, dispatcher, registry, channels=["whatsapp"])
        notifier.start()
        ...
        notifier.retry_failed()
    """

    def __init__(
        self,
        event_bus: EventBus,
        dispatcher: NotificationDispatcher,
        registry: CustomerRegistry,
        channels: Iterable[str] = (ChannelType.WHATSAPP,),
        max_attempts: int = 3,
    ):
        """
        Raises:
            UnsupportedChannelError: If a channel has no transport in the dispatcher
        """
        self.event_bus = event_bus
        self.dispatcher = dispatcher
        self.registry = registry
        self.channels = list(channels)
        self.max_attempts = max_attempts
        for channel in self.channels:
            if channel not in dispatcher.supported_channels:
                raise UnsupportedChannelError(f"No transport configured for channel: {channel}")

        self._pending: list[BanNotice] = []
        self._pending_lock = threading.Lock()
        self._started = False

    def start(self) -> None:
        """Subscribe to lifecycle events."""
        if self._started:
            logger.warning("BanNotifier already started")
            return
        for event_type in TEMPLATE_FOR_EVENT:
            self.event_bus.subscribe(event_type, self.handle_event)
        self._started = True
        logger.info(f"BanNotifier started - notifying via {', '.join(self.channels)}")

    def stop(self) -> None:
        if not self._started:
            return
        for event_type in TEMPLATE_FOR_EVENT:
            self.event_bus.unsubscribe(event_type, self.handle_event)
        self._started = False
        logger.info("BanNotifier stopped")

    # =========================================================================
    # Event handling
    # =========================================================================

    def handle_event(self, event: Event) -> list[MessageDeliveryStatus]:
        template_name = TEMPLATE_FOR_EVENT.get(event.event_type)
        if template_name is None:
            return []

        customer_id = event.payload["customer_id"]
        customer = self.registry.get_by_id(customer_id)
        parameters = notice_parameters(event, customer)
        logger.info(f"Handling {event.event_type} for customer {customer_id}")

        statuses = []
        for channel in self.channels:
            notice = BanNotice(
                customer_id=customer_id,
                template_name=template_name,
                parameters=parameters,
                channel=channel,
            )
            status = self._attempt(notice, customer)
            statuses.append(status)
            if not status.is_successful and notice.attempts < self.max_attempts:
                with self._pending_lock:
                    self._pending.append(notice)
        return statuses

    def _attempt(self, notice: BanNotice, customer: Customer) -> MessageDeliveryStatus:
        message = self.dispatcher.render_named(notice.template_name, notice.parameters)
        status = self.dispatcher.send(
            notice.channel,
            recipient_for(customer, notice.channel),
            message,
            customer_id=notice.customer_id,
        )
        notice.attempts += 1
        notice.statuses.append(status)
        notice.last_error = status.error_message
        return status

    # =========================================================================
    # Retries
    # =========================================================================

    def pending_notices(self) -> list[BanNotice]:
        with self._pending_lock:
            return list(self._pending)

    def retry_failed(self) -> list[MessageDeliveryStatus]:
        """
        Re-send every pending notice once.

        Notices that succeed are cleared; notices that reach max_attempts are
        dropped with an error log.
        """
        with self._pending_lock:
            batch, self._pending = self._pending, []

        statuses = []
        still_pending = []
        for notice in batch:
            customer = self.registry.get_by_id(notice.customer_id)
            status = self._attempt(notice, customer)
            statuses.append(status)
            if status.is_successful:
                logger.info(
                    f"Retried {notice.template_name} to {notice.customer_id} delivered "
                    f"after {notice.attempts} attempts"
                )
            elif notice.attempts >= self.max_attempts:
                logger.error(
                    f"Giving up on {notice.template_name} via {notice.channel} to "
                    f"{notice.customer_id} after {notice.attempts} attempts: {notice.last_error}"
                )
            else:
                still_pending.append(notice)

        with self._pending_lock:
            self._pending.extend(still_pending)
        return statuses
