"""
Shared infrastructure for the ban lifecycle core.

- Domain models (Customer, BanRecord, MessageDeliveryStatus, ...)
- Data store for JSON-seeded, in-memory persistence
- Error types, clock, per-customer locks, settings
"""

from shared.models import (
    Customer,
    CustomerStatus,
    BanRecord,
    BanClosure,
    MessageDeliveryStatus,
)
from shared.data_store import DataStore
from shared.clock import SystemClock, ManualClock
from shared.locks import KeyedLock

__all__ = [
    "Customer",
    "CustomerStatus",
    "BanRecord",
    "BanClosure",
    "MessageDeliveryStatus",
    "DataStore",
    "SystemClock",
    "ManualClock",
    "KeyedLock",
]
