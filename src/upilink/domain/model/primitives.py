"""Value helpers for identifiers and ledger addresses."""

from __future__ import annotations

import re
from typing import Final

type Address = str

UPI_ID_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"^[A-Za-z0-9._-]{2,256}@[A-Za-z0-9._-]{2,64}$"
)
_HEX_ADDRESS: Final[re.Pattern[str]] = re.compile(r"^(0x)?[0-9a-fA-F]{1,64}$")
ADDRESS_HEX_LENGTH: Final[int] = 64


class InvalidIdentifierError(ValueError):
    """Raised when a UPI id does not match the accepted grammar."""


def is_valid_upi_id(value: str) -> bool:
    return bool(UPI_ID_PATTERN.fullmatch(value))


def require_upi_id(value: str) -> str:
    """Return ``value`` unchanged or raise ``InvalidIdentifierError``."""

    if not is_valid_upi_id(value):
        raise InvalidIdentifierError(f"Invalid UPI id format: {value!r}")
    return value


def normalize_address(value: str) -> Address:
    """Canonical long form of a hex account address.

    Short forms (``0x1``) and mixed case compare equal after normalisation.
    Non-hex identities are only stripped and lower-cased.
    """

    candidate = value.strip()
    if not _HEX_ADDRESS.fullmatch(candidate):
        return candidate.lower()
    digits = candidate.lower().removeprefix("0x")
    return "0x" + digits.rjust(ADDRESS_HEX_LENGTH, "0")


def same_address(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return normalize_address(left) == normalize_address(right)
