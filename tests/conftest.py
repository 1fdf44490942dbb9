"""
Shared pytest fixtures for the ban lifecycle tests.

Every test gets fresh components over the JSON fixtures in data/, with a
manual clock fixed at 2025-03-01 12:00 UTC. At that moment:

- cust-001 Alice: active, no bans
- cust-002 Bob: banned for 7 days from 27 Feb (not yet due)
- cust-003 Chandra: banned permanently
- cust-004 Dewi: active, one lifted and one expired ban in history
- cust-005 Eric: banned for 3 days from 20 Feb (due, not yet swept)
"""

import pytest
from pathlib import Path

from customers.ledger import BanLedger
from customers.registry import CustomerRegistry
from lifecycle.coordinator import BanCoordinator
from lifecycle.event_bus import EventBus
from lifecycle.notifier import BanNotifier
from lifecycle.service import BanService, build_ban_service
from notifications.channels import EmailChannel, SMSChannel, WhatsAppChannel
from notifications.dispatcher import NotificationDispatcher
from shared.clock import ManualClock
from shared.config import Settings
from shared.data_store import DataStore
from shared.locks import KeyedLock


@pytest.fixture
def data_dir() -> Path:
    """Path to the fixture data directory."""
    return Path(__file__).parent.parent / "data"


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def data_store(data_dir: Path) -> DataStore:
    """
    Fresh DataStore instance for each test.

    Uses the real JSON fixtures; writes stay in memory so tests don't
    interfere with each other.
    """
    return DataStore(data_dir=data_dir)


@pytest.fixture
def empty_store() -> DataStore:
    return DataStore()


@pytest.fixture
def registry(data_store: DataStore, clock: ManualClock) -> CustomerRegistry:
    return CustomerRegistry(data_store, clock=clock)


@pytest.fixture
def ledger(data_store: DataStore, clock: ManualClock) -> BanLedger:
    return BanLedger(data_store, clock=clock, locks=KeyedLock())


# =============================================================================
# Notification Fixtures
# =============================================================================

@pytest.fixture
def whatsapp_channel() -> WhatsAppChannel:
    return WhatsAppChannel(fail_rate=0.0)


@pytest.fixture
def sms_channel() -> SMSChannel:
    return SMSChannel(fail_rate=0.0)


@pytest.fixture
def email_channel() -> EmailChannel:
    return EmailChannel(fail_rate=0.0)


@pytest.fixture
def dispatcher(whatsapp_channel, sms_channel, email_channel, clock):
    """Dispatcher over the three mock channels, shut down after the test."""
    dispatcher = NotificationDispatcher(
        [whatsapp_channel, sms_channel, email_channel],
        timeout_seconds=2.0,
        clock=clock,
    )
    yield dispatcher
    dispatcher.shutdown(wait=False)


# =============================================================================
# Lifecycle Fixtures
# =============================================================================

@pytest.fixture
def event_bus() -> EventBus:
    """Synchronous bus: handlers run before publish returns."""
    return EventBus()


@pytest.fixture
def coordinator(registry, ledger, event_bus) -> BanCoordinator:
    return BanCoordinator(registry, ledger, event_bus)


@pytest.fixture
def notifier(event_bus, dispatcher, registry):
    notifier = BanNotifier(event_bus, dispatcher, registry, channels=["whatsapp"])
    notifier.start()
    yield notifier
    notifier.stop()


@pytest.fixture
def service(data_dir, clock, whatsapp_channel, sms_channel, email_channel):
    """A fully wired service with synchronous notification."""
    settings = Settings(data_dir=data_dir, notify_async=False, channel_timeout_seconds=2.0)
    service = build_ban_service(
        settings=settings,
        clock=clock,
        data_store=DataStore(data_dir),
        channels=[whatsapp_channel, sms_channel, email_channel],
    )
    yield service
    service.close()


# =============================================================================
# Customer Fixtures
# =============================================================================

@pytest.fixture
def alice_customer_id() -> str:
    """Active customer with no ban history."""
    return "cust-001"


@pytest.fixture
def bob_customer_id() -> str:
    """Banned for 7 days from 2025-02-27 18:00 UTC."""
    return "cust-002"


@pytest.fixture
def chandra_customer_id() -> str:
    """Permanently banned."""
    return "cust-003"


@pytest.fixture
def dewi_customer_id() -> str:
    """Active, with a lifted ban and an expired ban in history."""
    return "cust-004"


@pytest.fixture
def eric_customer_id() -> str:
    """Banned for 3 days from 2025-02-20; due for expiry at the fixture clock."""
    return "cust-005"
