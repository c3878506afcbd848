"""Ports for persisting mapping records and escrow wallets."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from upilink.domain.model import EscrowWallet, MappingRecord

if TYPE_CHECKING:
    from collections.abc import Sequence

    from upilink.domain.model import Address


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a keyed local store."""

    def get(self, key: str) -> TEntity | None: ...

    def save(self, entity: TEntity) -> None: ...

    def remove(self, key: str) -> None: ...


@runtime_checkable
class MappingRepository(Repository[MappingRecord], Protocol):
    """Persistence contract for mapping records keyed by UPI id."""

    def list_by_owner(self, owner: Address) -> Sequence[MappingRecord]: ...


@runtime_checkable
class EscrowWalletRepository(Repository[EscrowWallet], Protocol):
    """Persistence contract for escrow wallets keyed by UPI id."""

    def get_by_address(self, address: Address) -> EscrowWallet | None: ...

    def list_all(self) -> Sequence[EscrowWallet]: ...
