"""
Ban lifecycle events.

Events are named in past tense and carry everything the notifier needs, so
subscribers never have to query the ledger back. An event is stamped with the
time of the transition it reports (banned_at or removed_at), so it agrees
with the ledger under any clock.
"""

from datetime import datetime
from typing import Any, Optional

from shared.models import BanRecord

from lifecycle.event_bus import Event

SOURCE = "ban-coordinator"


class EventTypes:
    """Constants for event type names."""
    BAN_IMPOSED = "BanImposed"
    BAN_LIFTED = "BanLifted"
    BAN_EXPIRED = "BanExpired"


def _payload(ban: BanRecord) -> dict[str, Any]:
    return {
        "customer_id": ban.customer_id,
        "ban_id": ban.id,
        "reason": ban.reason,
        "duration_days": ban.duration_days,
        "banned_at": ban.banned_at,
        "ends_at": ban.ends_at,
        "banned_by_id": ban.banned_by_id,
    }


def _event(event_type: str, payload: dict[str, Any], source: str, at: Optional[datetime]) -> Event:
    if at is None:
        return Event(event_type=event_type, source=source, payload=payload)
    return Event(event_type=event_type, source=source, payload=payload, timestamp=at)


def ban_imposed(ban: BanRecord, source: str = SOURCE) -> Event:
    """Published when a staff member bans a customer."""
    return _event(EventTypes.BAN_IMPOSED, _payload(ban), source, ban.banned_at)


def ban_lifted(ban: BanRecord, source: str = SOURCE) -> Event:
    """Published when a staff member lifts a ban."""
    payload = _payload(ban)
    payload.update(removed_at=ban.removed_at, removed_by_id=ban.removed_by_id)
    return _event(EventTypes.BAN_LIFTED, payload, source, ban.removed_at)


def ban_expired(ban: BanRecord, source: str = SOURCE) -> Event:
    """Published when a ban runs out, whether found by a read or by the sweep."""
    payload = _payload(ban)
    payload.update(removed_at=ban.removed_at)
    return _event(EventTypes.BAN_EXPIRED, payload, source, ban.removed_at)
