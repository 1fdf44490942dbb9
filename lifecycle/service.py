"""
Wiring for the ban lifecycle core.

build_ban_service() constructs every component from Settings and passes them
to each other explicitly. There are no module-level singletons: tests and
entry points each build their own service.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

from customers.ledger import BanLedger
from customers.registry import CustomerRegistry
from notifications.channels import (
    EmailChannel,
    NotificationChannel,
    SMSChannel,
    WhatsAppChannel,
    WhatsAppCloudChannel,
)
from notifications.delivery_log import DeliveryLog
from notifications.dispatcher import NotificationDispatcher
from notifications.templates import DEFAULT_TEMPLATES, load_templates
from shared.clock import Clock, SystemClock
from shared.config import Settings, get_settings
from shared.data_store import DataStore
from shared.locks import KeyedLock

from lifecycle.coordinator import BanCoordinator
from lifecycle.event_bus import EventBus
from lifecycle.notifier import BanNotifier
from lifecycle.sweeper import ExpirySweeper

logger = logging.getLogger("ban_service")


@dataclass
class BanService:
    """All components of a running ban lifecycle core."""
    settings: Settings
    clock: Clock
    data_store: DataStore
    registry: CustomerRegistry
    ledger: BanLedger
    dispatcher: NotificationDispatcher
    event_bus: EventBus
    coordinator: BanCoordinator
    notifier: BanNotifier
    sweeper: ExpirySweeper
    notify_executor: Optional[ThreadPoolExecutor] = None

    def start(self) -> None:
        """Start the background sweep, which also retries failed notices."""
        self.sweeper.start()

    def close(self) -> None:
        """Stop the sweep, let pending notifications finish, release threads."""
        self.sweeper.stop()
        self.event_bus.flush()
        self.notifier.stop()
        if self.notify_executor is not None:
            self.notify_executor.shutdown(wait=True)
        self.dispatcher.shutdown()


def default_channels(settings: Settings) -> list[NotificationChannel]:
    """Mock transports, with the WhatsApp Cloud API swapped in when configured."""
    whatsapp: NotificationChannel = WhatsAppChannel()
    if settings.whatsapp_token:
        whatsapp = WhatsAppCloudChannel(
            token=settings.whatsapp_token,
            phone_number_id=settings.whatsapp_phone_number_id or "",
            base_url=settings.whatsapp_api_base_url,
            timeout=settings.channel_timeout_seconds,
        )
    return [whatsapp, SMSChannel(), EmailChannel()]


def build_ban_service(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
    data_store: Optional[DataStore] = None,
    channels: Optional[Sequence[NotificationChannel]] = None,
) -> BanService:
    """
    Assemble the ban lifecycle core.

    Args:
        settings: Defaults to get_settings()
        clock: Defaults to the system clock
        data_store: Defaults to a store over settings.data_dir
        channels: Defaults to default_channels(settings)
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    data_store = data_store if data_store is not None else DataStore(settings.data_dir)
    locks = KeyedLock()

    templates = (
        load_templates(settings.templates_path) if settings.templates_path else DEFAULT_TEMPLATES
    )
    dispatcher = NotificationDispatcher(
        channels=channels if channels is not None else default_channels(settings),
        templates=templates,
        delivery_log=DeliveryLog(settings.delivery_log_path),
        timeout_seconds=settings.channel_timeout_seconds,
        clock=clock,
        max_workers=settings.notification_workers,
    )

    notify_executor = None
    if settings.notify_async:
        notify_executor = ThreadPoolExecutor(
            max_workers=settings.notification_workers,
            thread_name_prefix="ban-notify",
        )
    event_bus = EventBus(executor=notify_executor)

    registry = CustomerRegistry(
        data_store, clock=clock, default_country_code=settings.default_country_code
    )
    ledger = BanLedger(data_store, clock=clock, locks=locks)
    coordinator = BanCoordinator(
        registry, ledger, event_bus, reason_max_length=settings.reason_max_length
    )
    notifier = BanNotifier(
        event_bus,
        dispatcher,
        registry,
        channels=settings.notification_channels,
        max_attempts=settings.max_notification_attempts,
    )
    notifier.start()
    sweeper = ExpirySweeper(
        coordinator,
        ledger,
        data_store,
        clock=clock,
        interval_seconds=settings.sweep_interval_seconds,
        lease_seconds=settings.sweep_lease_seconds,
        notifier=notifier,
    )

    logger.info("Ban service ready")
    return BanService(
        settings=settings,
        clock=clock,
        data_store=data_store,
        registry=registry,
        ledger=ledger,
        dispatcher=dispatcher,
        event_bus=event_bus,
        coordinator=coordinator,
        notifier=notifier,
        sweeper=sweeper,
        notify_executor=notify_executor,
    )
