"""Port for the remote ledger-backed registry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from upilink.domain.model import (
        AccountTransaction,
        Address,
        MerchantProfile,
        OperationResult,
        RegistryStats,
    )


class RegistryError(RuntimeError):
    """Base class for failures of registry read calls."""


class RegistryUnavailableError(RegistryError):
    """Raised when the registry cannot be reached or a read timed out."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class MappingNotFoundError(RegistryError):
    """Raised by ``owner_of`` when the identifier is not registered."""

    def __init__(self, upi_id: str) -> None:
        super().__init__(f"UPI id not registered: {upi_id}")
        self.upi_id = upi_id


@dataclass(frozen=True, slots=True)
class RemoteEscrow:
    """Escrow link as recorded by the registry (address only, never keys)."""

    address: Address
    upi_id: str
    created_at: datetime | None = None


@runtime_checkable
class RegistryClient(Protocol):
    """Read/write access to the registry on behalf of one signing identity.

    Read calls raise ``RegistryError`` subclasses. Submit calls report remote
    rejection and timeouts through ``OperationResult`` instead of raising.
    """

    @property
    def identity(self) -> Address: ...

    def exists(self, upi_id: str) -> bool: ...

    def owner_of(self, upi_id: str) -> Address: ...

    def submit_register(self, upi_id: str) -> OperationResult: ...

    def submit_remove(self, upi_id: str) -> OperationResult: ...

    def submit_link_escrow(self, upi_id: str, address: Address) -> OperationResult: ...

    def list_mappings_of(self, owner: Address) -> Sequence[str]: ...

    def list_escrows_of(self, owner: Address) -> Sequence[RemoteEscrow]: ...

    def merchant_info(self, address: Address) -> MerchantProfile | None:
        """The registered merchant at ``address``, ``None`` when it never registered."""
        ...

    def submit_register_merchant(self, business_name: str, contact_info: str) -> OperationResult:
        """Register the signing identity as a merchant; required before ``submit_register``."""
        ...

    def registry_stats(self) -> RegistryStats: ...

    def account_balance(self, address: Address) -> int:
        """Native coin balance in octas; accounts that hold no coin report 0."""
        ...

    def account_transactions(self, address: Address, limit: int) -> Sequence[AccountTransaction]:
        """Up to ``limit`` most recent transactions of ``address``; empty for unknown accounts."""
        ...


__all__ = [
    "MappingNotFoundError",
    "RegistryClient",
    "RegistryError",
    "RegistryUnavailableError",
    "RemoteEscrow",
]
