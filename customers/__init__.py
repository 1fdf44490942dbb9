"""
Customer records and their ban history.

- CustomerRegistry: registration, lookup and search of customers
- BanLedger: append-only ban history and the current ban status
"""

from customers.registry import CustomerRegistry, normalize_phone
from customers.ledger import BanLedger

__all__ = [
    "CustomerRegistry",
    "normalize_phone",
    "BanLedger",
]
