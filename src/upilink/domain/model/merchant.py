"""Merchant accounts and read-only account figures."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from datetime import datetime

    from .primitives import Address

OCTAS_PER_APT: Final[int] = 100_000_000
BUSINESS_NAME_LENGTH: Final[tuple[int, int]] = (2, 100)
CONTACT_INFO_LENGTH: Final[tuple[int, int]] = (5, 200)


@dataclass(frozen=True, slots=True)
class MerchantProfile:
    """A merchant as recorded by the registry; only registered merchants may own UPI ids."""

    address: Address
    business_name: str
    contact_info: str
    registered_at: datetime | None = None
    is_active: bool = True
    kyc_verified: bool = False


@dataclass(frozen=True, slots=True)
class RegistryStats:
    total_merchants: int
    total_mappings: int


@dataclass(frozen=True, slots=True)
class AccountTransaction:
    """One committed or failed transaction of an account, newest first in listings."""

    reference: str
    timestamp: datetime
    success: bool
    function: str | None = None
    sender: Address | None = None
    amount_octas: int | None = None


@dataclass(frozen=True, slots=True)
class EscrowBalance:
    upi_id: str
    address: Address
    octas: int

    @property
    def apt(self) -> Decimal:
        return Decimal(self.octas) / OCTAS_PER_APT


def merchant_details_problem(business_name: str, contact_info: str) -> str | None:
    """Describe what is wrong with the registration details, or ``None`` if they are fine."""

    for label, value, (shortest, longest) in (
        ("business name", business_name, BUSINESS_NAME_LENGTH),
        ("contact info", contact_info, CONTACT_INFO_LENGTH),
    ):
        length = len(value.strip())
        if not shortest <= length <= longest:
            return f"{label} must be {shortest} to {longest} characters, got {length}"
    return None
