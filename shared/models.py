"""
Domain models for the ban lifecycle core.

These models mirror the reservation system's customer and notification
entities. Closure and delivery-outcome invariants are enforced by the models
themselves rather than left to callers.

Design decisions:
- Using Pydantic for validation and serialization
- BanRecord and MessageDeliveryStatus are frozen; a ban only changes state
  through the ledger, which produces a new closed copy
- How a ban ended (manual lift vs. system expiry) is stored explicitly in
  `closure` rather than inferred from a missing removed_by_id
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# Enums
# =============================================================================

class CustomerStatus(str, Enum):
    """Customer standing. Only ever changed as a side effect of a ban transition."""
    ACTIVE = "Active"
    BANNED = "Banned"


class BanClosure(str, Enum):
    """How an inactive ban was closed."""
    LIFTED = "lifted"     # Removed by a staff member
    EXPIRED = "expired"   # Ran out its duration; closed by the system


# =============================================================================
# Customers and bans
# =============================================================================

class Customer(BaseModel):
    """
    A guest known to the reservation system.

    Customers are never deleted. `ban_ids` lists the customer's ban records
    in the order they were imposed.
    """
    id: str = Field(default_factory=_new_id, description="Unique customer identifier")
    name: str = Field(..., min_length=1, description="Customer display name")
    phone: str = Field(..., description="Normalized phone number with country code")
    email: str = Field(..., description="Primary email address")
    status: CustomerStatus = Field(default=CustomerStatus.ACTIVE)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    ban_ids: list[str] = Field(default_factory=list, description="Ban history, oldest first")

    model_config = ConfigDict(use_enum_values=True)

    @property
    def is_banned(self) -> bool:
        return self.status == CustomerStatus.BANNED


class BanRecord(BaseModel):
    """
    One ban imposed on one customer.

    A record is created active by the ledger and closed exactly once, either
    by a staff lift or by expiry. It is never deleted.
    """
    id: str = Field(default_factory=_new_id)
    customer_id: str = Field(..., description="Customer this ban belongs to")
    reason: str = Field(..., min_length=1)
    banned_at: datetime
    duration_days: int = Field(..., ge=0, description="0 means permanent")
    is_active: bool = True
    banned_by_id: str = Field(..., description="Staff member who imposed the ban")
    removed_at: Optional[datetime] = None
    removed_by_id: Optional[str] = None
    closure: Optional[BanClosure] = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_closure_fields(self) -> "BanRecord":
        if self.is_active:
            if self.removed_at or self.removed_by_id or self.closure:
                raise ValueError("An active ban cannot carry removal metadata")
            return self
        if self.removed_at is None or self.closure is None:
            raise ValueError("An inactive ban must record when and how it was closed")
        if self.closure == BanClosure.LIFTED and self.removed_by_id is None:
            raise ValueError("A lifted ban must record who lifted it")
        if self.closure == BanClosure.EXPIRED and self.removed_by_id is not None:
            raise ValueError("An expired ban has no removing staff member")
        return self

    @property
    def is_permanent(self) -> bool:
        return self.duration_days == 0

    @property
    def ends_at(self) -> Optional[datetime]:
        """When the ban runs out, or None for a permanent ban."""
        if self.is_permanent:
            return None
        return self.banned_at + timedelta(days=self.duration_days)

    def is_due(self, now: datetime) -> bool:
        """True if this is an active, non-permanent ban whose time is up."""
        return self.is_active and not self.is_permanent and now >= self.ends_at

    def closed(
        self,
        at: datetime,
        closure: BanClosure,
        removed_by_id: Optional[str] = None,
    ) -> "BanRecord":
        """Return the inactive copy of this record."""
        return BanRecord(
            **self.model_dump(exclude={"is_active", "removed_at", "removed_by_id", "closure"}),
            is_active=False,
            removed_at=at,
            removed_by_id=removed_by_id,
            closure=closure,
        )


# =============================================================================
# Notifications
# =============================================================================

class MessageDeliveryStatus(BaseModel):
    """
    Outcome of one send attempt. Written once, kept for audit.
    """
    is_successful: bool
    channel: str
    recipient: str
    customer_id: Optional[str] = None
    message_id: Optional[str] = Field(default=None, description="Provider id, success only")
    error_message: Optional[str] = Field(default=None, description="Failure text, failure only")
    sent_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_outcome_fields(self) -> "MessageDeliveryStatus":
        if self.is_successful and self.error_message is not None:
            raise ValueError("A successful delivery has no error message")
        if not self.is_successful:
            if self.message_id is not None:
                raise ValueError("A failed delivery has no provider message id")
            if not self.error_message:
                raise ValueError("A failed delivery must say why")
        return self

    def __str__(self) -> str:
        status = "✓" if self.is_successful else "✗"
        suffix = f" ({self.error_message})" if self.error_message else ""
        return f"{status} {self.channel.upper()} to {self.recipient}{suffix}"


# =============================================================================
# Read models
# =============================================================================

class BanInfo(BaseModel):
    """Summary of a customer's current ban."""
    id: str
    customer_id: str
    reason: str
    banned_at: datetime
    duration_days: int
    ends_at: Optional[datetime]
    banned_by_id: str

    @classmethod
    def from_record(cls, ban: BanRecord) -> "BanInfo":
        return cls(
            id=ban.id,
            customer_id=ban.customer_id,
            reason=ban.reason,
            banned_at=ban.banned_at,
            duration_days=ban.duration_days,
            ends_at=ban.ends_at,
            banned_by_id=ban.banned_by_id,
        )


class BannedCustomer(BaseModel):
    """Row in the banned customers list."""
    customer_id: str
    name: str
    phone: str
    reason: str
    banned_at: datetime
    duration_days: int
    ends_at: Optional[datetime]
    banned_by_id: str


class CustomerDetail(BaseModel):
    """A customer with their current ban and full ban history."""
    customer: Customer
    ban_info: Optional[BanInfo] = None
    ban_history: list[BanRecord] = Field(default_factory=list)


class CustomerPage(BaseModel):
    """One page of a customer search."""
    customers: list[Customer]
    total_count: int
    page: int
    page_size: int
    search_term: Optional[str] = None

    @property
    def total_pages(self) -> int:
        if self.total_count == 0:
            return 0
        return -(-self.total_count // self.page_size)
