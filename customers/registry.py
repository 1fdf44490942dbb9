"""
Customer registry.

Owns customer records: registration with contact-detail validation, lookup
and search. Customer status is only changed by the ban lifecycle coordinator
through set_status; API consumers never set it directly.
"""

import logging
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ValidationError as PydanticValidationError

from shared.clock import Clock, SystemClock
from shared.data_store import DataStore
from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.models import Customer, CustomerPage, CustomerStatus

logger = logging.getLogger("customer_registry")

# Numbers starting with one of these already carry a country code
KNOWN_COUNTRY_CODES = ("1", "60")

MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15


def normalize_phone(phone: str, default_country_code: str = "60") -> str:
    """
    Reduce a phone number to digits with a country code.

    Spaces, dashes, parentheses and a leading '+' are dropped. Numbers that do
    not start with a known country code get the default one prefixed.

    Raises:
        ValidationError: If the result is not a plausible phone number
    """
    digits = "".join(ch for ch in phone if ch.isdigit())
    if not digits:
        raise ValidationError(f"Phone number has no digits: {phone!r}")
    if not digits.startswith(KNOWN_COUNTRY_CODES):
        digits = default_country_code + digits.lstrip("0")
    if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
        raise ValidationError(f"Phone number has an invalid length: {phone!r}")
    return digits


class CustomerRegistration(BaseModel):
    """Input accepted by CustomerRegistry.register."""
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=1)
    email: EmailStr


class CustomerRegistry:
    """
    Registration and lookup of customers.

    Example:
        registry = CustomerRegistry(DataStore())
        customer = registry.register("Alice Tan", "012-345 6789", "alice@example.com")
        registry.get_by_id(customer.id)
    """

    def __init__(
        self,
        data_store: DataStore,
        clock: Optional[Clock] = None,
        default_country_code: str = "60",
    ):
        self.data_store = data_store
        self.clock = clock or SystemClock()
        self.default_country_code = default_country_code

    def register(self, name: str, phone: str, email: str) -> Customer:
        """
        Register a new customer.

        Raises:
            ValidationError: If a field is malformed or the phone number
                already belongs to another customer
        """
        try:
            registration = CustomerRegistration(name=name.strip(), phone=phone, email=email)
        except PydanticValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ValidationError(f"Invalid customer details: {fields}") from e

        normalized = normalize_phone(registration.phone, self.default_country_code)
        now = self.clock.now()
        customer = Customer(
            name=registration.name,
            phone=normalized,
            email=str(registration.email),
            created_at=now,
            updated_at=now,
        )
        try:
            self.data_store.add_customer(customer)
        except ConflictError as e:
            logger.warning(f"Registration rejected, phone already registered: {normalized}")
            raise ValidationError(f"Phone number already registered: {normalized}") from e

        logger.info(f"Registered customer {customer.id} ({customer.name})")
        return customer

    def get_by_id(self, customer_id: str) -> Customer:
        """
        Raises:
            NotFoundError: If no customer has this id
        """
        customer = self.data_store.get_customer(customer_id)
        if customer is None:
            logger.warning(f"Customer not found: {customer_id}")
            raise NotFoundError(f"Customer not found: {customer_id}")
        return customer

    def find_by_phone(self, phone: str) -> Optional[Customer]:
        """Look a customer up by phone number in any common format."""
        try:
            normalized = normalize_phone(phone, self.default_country_code)
        except ValidationError:
            return None
        return self.data_store.find_customer_by_phone(normalized)

    def search(
        self,
        term: Optional[str] = None,
        status: Optional[CustomerStatus] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> CustomerPage:
        """
        Page through customers, most recently updated first.

        `term` matches name and email case-insensitively and phone as a digit
        substring.
        """
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")

        matches = self.data_store.get_customers()
        if status is not None:
            matches = [c for c in matches if c.status == status]
        if term:
            needle = term.strip().lower()
            digits = "".join(ch for ch in needle if ch.isdigit())
            matches = [
                c for c in matches
                if needle in c.name.lower()
                or needle in c.email.lower()
                or (digits and digits in c.phone)
            ]

        matches.sort(key=lambda c: c.updated_at, reverse=True)
        start = (page - 1) * page_size
        return CustomerPage(
            customers=matches[start:start + page_size],
            total_count=len(matches),
            page=page,
            page_size=page_size,
            search_term=term,
        )

    def set_status(self, customer_id: str, status: CustomerStatus) -> Customer:
        """
        Change a customer's status. Called by the ban coordinator only.
        """
        customer = self.get_by_id(customer_id)
        if customer.status == status:
            return customer
        updated = customer.model_copy(
            update={"status": CustomerStatus(status).value, "updated_at": self.clock.now()}
        )
        self.data_store.update_customer(updated)
        logger.info(f"Customer {customer_id} status: {customer.status} -> {updated.status}")
        return updated
