"""
JSON-backed data store for customers and ban records.

This module is the persistence interface the registry and ledger consume. It
loads fixture files lazily and keeps all writes in memory.

Design decisions:
- Customers keyed by id, with a secondary index on normalized phone
- Ban records keyed by id, with a secondary index of active ban ids per
  customer so the "current active ban" lookup is O(1)
- insert_ban is a compare-and-swap on "customer has no active ban"; the
  ledger's per-customer lock is the first line, this is the storage-level one
- A named lease table backs single-flight background jobs (the expiry sweep)
- One store-wide re-entrant lock makes each method atomic
"""

import json
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

from shared.errors import ConflictError, NotFoundError
from shared.models import BanRecord, Customer


class DataStore:
    """
    In-memory store seeded from JSON fixtures.

    Fixture files (both optional):
    - customers.json: list of Customer objects
    - bans.json: list of BanRecord objects

    A customer's `ban_ids` is rebuilt from bans.json on load, so fixtures do
    not need to repeat it.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        """
        Initialize the data store.

        Args:
            data_dir: Directory containing the JSON fixtures. None starts empty.
        """
        self.data_dir = Path(data_dir) if data_dir is not None else None
        self._lock = threading.RLock()

        # Loaded lazily
        self._customers: Optional[dict[str, Customer]] = None
        self._phone_index: dict[str, str] = {}
        self._bans: dict[str, BanRecord] = {}
        self._active_index: dict[str, set[str]] = defaultdict(set)

        # lease name -> (owner, expires_at)
        self._leases: dict[str, tuple[str, datetime]] = {}

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self, filename: str) -> list[dict]:
        if self.data_dir is None:
            return []
        filepath = self.data_dir / filename
        if not filepath.exists():
            return []
        with open(filepath, "r") as f:
            return json.load(f)

    def _ensure_loaded(self):
        if self._customers is not None:
            return
        customers = {c["id"]: Customer(**c) for c in self._load_json("customers.json")}
        bans = [BanRecord(**b) for b in self._load_json("bans.json")]

        history: dict[str, list[BanRecord]] = defaultdict(list)
        for ban in bans:
            self._bans[ban.id] = ban
            history[ban.customer_id].append(ban)
            if ban.is_active:
                self._active_index[ban.customer_id].add(ban.id)

        for customer_id, customer in customers.items():
            ordered = sorted(history.get(customer_id, []), key=lambda b: b.banned_at)
            customers[customer_id] = customer.model_copy(
                update={"ban_ids": [b.id for b in ordered]}
            )
            self._phone_index[customer.phone] = customer_id

        self._customers = customers

    # =========================================================================
    # Customer Operations
    # =========================================================================

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        with self._lock:
            self._ensure_loaded()
            return self._customers.get(customer_id)

    def get_customers(self) -> list[Customer]:
        with self._lock:
            self._ensure_loaded()
            return list(self._customers.values())

    def find_customer_by_phone(self, phone: str) -> Optional[Customer]:
        with self._lock:
            self._ensure_loaded()
            customer_id = self._phone_index.get(phone)
            return self._customers.get(customer_id) if customer_id else None

    def add_customer(self, customer: Customer) -> Customer:
        """
        Insert a new customer.

        Raises:
            ConflictError: If the id or phone number is already taken
        """
        with self._lock:
            self._ensure_loaded()
            if customer.id in self._customers:
                raise ConflictError(f"Customer id already exists: {customer.id}")
            if customer.phone in self._phone_index:
                raise ConflictError(f"Phone number already registered: {customer.phone}")
            self._customers[customer.id] = customer
            self._phone_index[customer.phone] = customer.id
            return customer

    def update_customer(self, customer: Customer) -> Customer:
        """Replace a stored customer. Phone numbers are immutable."""
        with self._lock:
            self._ensure_loaded()
            existing = self._customers.get(customer.id)
            if existing is None:
                raise NotFoundError(f"Customer not found: {customer.id}")
            if existing.phone != customer.phone:
                raise ConflictError("Customer phone numbers cannot be changed")
            self._customers[customer.id] = customer
            return customer

    # =========================================================================
    # Ban Operations
    # =========================================================================

    def get_ban(self, ban_id: str) -> Optional[BanRecord]:
        with self._lock:
            self._ensure_loaded()
            return self._bans.get(ban_id)

    def get_bans_for_customer(self, customer_id: str) -> list[BanRecord]:
        """A customer's bans, oldest first."""
        with self._lock:
            self._ensure_loaded()
            customer = self._customers.get(customer_id)
            if customer is None:
                return []
            return [self._bans[ban_id] for ban_id in customer.ban_ids]

    def get_active_bans_for(self, customer_id: str) -> list[BanRecord]:
        """
        Active bans for one customer via the secondary index.

        Normally zero or one; more than one means the store is corrupt.
        """
        with self._lock:
            self._ensure_loaded()
            return [self._bans[ban_id] for ban_id in self._active_index.get(customer_id, ())]

    def get_active_bans(self) -> list[BanRecord]:
        with self._lock:
            self._ensure_loaded()
            return [
                self._bans[ban_id]
                for ban_ids in self._active_index.values()
                for ban_id in ban_ids
            ]

    def insert_ban(self, ban: BanRecord) -> BanRecord:
        """
        Append a new active ban.

        Raises:
            NotFoundError: If the customer does not exist
            ConflictError: If the customer already has an active ban
        """
        with self._lock:
            self._ensure_loaded()
            customer = self._customers.get(ban.customer_id)
            if customer is None:
                raise NotFoundError(f"Customer not found: {ban.customer_id}")
            if ban.id in self._bans:
                raise ConflictError(f"Ban id already exists: {ban.id}")
            if ban.is_active and self._active_index.get(ban.customer_id):
                raise ConflictError(f"Customer {ban.customer_id} already has an active ban")

            self._bans[ban.id] = ban
            if ban.is_active:
                self._active_index[ban.customer_id].add(ban.id)
            self._customers[customer.id] = customer.model_copy(
                update={"ban_ids": customer.ban_ids + [ban.id]}
            )
            return ban

    def close_ban(self, closed: BanRecord) -> BanRecord:
        """
        Store the closed version of a currently active ban.

        Raises:
            NotFoundError: If the ban does not exist
            ConflictError: If the stored ban is already closed
        """
        if closed.is_active:
            raise ValueError("close_ban expects an inactive record")
        with self._lock:
            self._ensure_loaded()
            stored = self._bans.get(closed.id)
            if stored is None:
                raise NotFoundError(f"Ban not found: {closed.id}")
            if not stored.is_active:
                raise ConflictError(f"Ban {closed.id} is already closed")
            self._bans[closed.id] = closed
            self._active_index[closed.customer_id].discard(closed.id)
            return closed

    # =========================================================================
    # Leases (single-flight jobs)
    # =========================================================================

    def acquire_lease(self, name: str, owner: str, ttl: timedelta, now: datetime) -> bool:
        """
        Take the named lease unless someone else holds an unexpired one.

        The current holder may re-acquire to extend it.
        """
        with self._lock:
            held = self._leases.get(name)
            if held is not None:
                holder, expires_at = held
                if holder != owner and expires_at > now:
                    return False
            self._leases[name] = (owner, now + ttl)
            return True

    def release_lease(self, name: str, owner: str) -> None:
        with self._lock:
            held = self._leases.get(name)
            if held is not None and held[0] == owner:
                del self._leases[name]

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def reload(self):
        """Drop in-memory state and reload the fixtures on next access."""
        with self._lock:
            self._customers = None
            self._phone_index = {}
            self._bans = {}
            self._active_index = defaultdict(set)
            self._leases = {}
