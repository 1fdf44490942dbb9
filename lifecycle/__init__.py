"""
Ban lifecycle orchestration.

- BanCoordinator: impose / lift / expire, and the status queries
- EventBus + events: what the coordinator publishes after each transition
- BanNotifier: turns those events into customer messages
- ExpirySweeper: single-flight background expiry
- build_ban_service: wires everything from Settings
"""

from lifecycle.event_bus import Event, EventBus
from lifecycle.events import EventTypes
from lifecycle.coordinator import BanCoordinator
from lifecycle.notifier import BanNotifier, BanNotice
from lifecycle.sweeper import ExpirySweeper, SweepResult
from lifecycle.service import BanService, build_ban_service

__all__ = [
    "Event",
    "EventBus",
    "EventTypes",
    "BanCoordinator",
    "BanNotifier",
    "BanNotice",
    "ExpirySweeper",
    "SweepResult",
    "BanService",
    "build_ban_service",
]
