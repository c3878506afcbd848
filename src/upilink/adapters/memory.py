"""In-process registry used for the ``mock`` registry mode and in tests.

A single ``InMemoryLedger`` plays the role of the shared ledger; each
``InMemoryRegistryClient`` signs on behalf of one identity, so several
merchants (or an attacker) can be simulated against the same ledger. Given a
``path`` the ledger is kept in a JSON file so CLI runs in mock mode share state.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel

from upilink.domain.model import (
    AccountTransaction,
    FailureReason,
    MerchantProfile,
    OperationResult,
    RegistryStats,
    normalize_address,
    same_address,
)
from upilink.domain.ports import MappingNotFoundError, RegistryClient, RemoteEscrow

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from upilink.domain.model import Address

log = getLogger(__name__)

TRANSFER_FUNCTION = "0x1::aptos_account::transfer"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _Entry:
    owner: Address
    escrow: RemoteEscrow | None = None


class _LedgerEntryModel(BaseModel):
    upi_id: str
    owner: str
    escrow_address: str | None = None
    escrow_created_at: datetime | None = None


class _MerchantModel(BaseModel):
    address: str
    business_name: str
    contact_info: str
    registered_at: datetime | None = None
    is_active: bool = True
    kyc_verified: bool = False


class _TransactionModel(BaseModel):
    account: str
    reference: str
    timestamp: datetime
    success: bool = True
    function: str | None = None
    sender: str | None = None
    amount_octas: int | None = None


class _LedgerSnapshot(BaseModel):
    entries: list[_LedgerEntryModel] = []
    merchants: list[_MerchantModel] = []
    balances: dict[str, int] = {}
    transactions: list[_TransactionModel] = []


@dataclass(slots=True)
class InMemoryLedger:
    """Authoritative mapping table with the registry module's write rules.

    With ``require_merchant`` only registered merchants may register UPI ids,
    as on the deployed contract.
    """

    clock: Callable[[], datetime] = _utcnow
    path: Path | None = None
    require_merchant: bool = False
    _entries: dict[str, _Entry] = field(default_factory=dict, init=False)
    _merchants: dict[Address, MerchantProfile] = field(default_factory=dict, init=False)
    _balances: dict[Address, int] = field(default_factory=dict, init=False)
    _transactions: dict[Address, list[AccountTransaction]] = field(
        default_factory=dict, init=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _sequence: Iterator[int] = field(default_factory=lambda: itertools.count(1), init=False)

    def __post_init__(self) -> None:
        if self.path is not None and self.path.exists():
            self._load(self.path)

    def _load(self, path: Path) -> None:
        snapshot = _LedgerSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        for item in snapshot.entries:
            escrow = None
            if item.escrow_address is not None:
                escrow = RemoteEscrow(
                    address=item.escrow_address,
                    upi_id=item.upi_id,
                    created_at=item.escrow_created_at,
                )
            self._entries[item.upi_id] = _Entry(owner=item.owner, escrow=escrow)
        for merchant in snapshot.merchants:
            self._merchants[merchant.address] = MerchantProfile(**merchant.model_dump())
        self._balances.update(snapshot.balances)
        for item in snapshot.transactions:
            self._transactions.setdefault(item.account, []).append(
                AccountTransaction(**item.model_dump(exclude={"account"}))
            )
        log.debug(
            "Loaded %d mock ledger entries and %d merchants from %s",
            len(self._entries),
            len(self._merchants),
            path,
        )

    def _persist(self) -> None:
        if self.path is None:
            return
        snapshot = _LedgerSnapshot(
            entries=[
                _LedgerEntryModel(
                    upi_id=upi_id,
                    owner=entry.owner,
                    escrow_address=entry.escrow.address if entry.escrow else None,
                    escrow_created_at=entry.escrow.created_at if entry.escrow else None,
                )
                for upi_id, entry in sorted(self._entries.items())
            ],
            merchants=[
                _MerchantModel(
                    address=profile.address,
                    business_name=profile.business_name,
                    contact_info=profile.contact_info,
                    registered_at=profile.registered_at,
                    is_active=profile.is_active,
                    kyc_verified=profile.kyc_verified,
                )
                for _, profile in sorted(self._merchants.items())
            ],
            balances=dict(sorted(self._balances.items())),
            transactions=[
                _TransactionModel(
                    account=account,
                    reference=tx.reference,
                    timestamp=tx.timestamp,
                    success=tx.success,
                    function=tx.function,
                    sender=tx.sender,
                    amount_octas=tx.amount_octas,
                )
                for account, history in sorted(self._transactions.items())
                for tx in history
            ],
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")

    def _reference(self, action: str) -> str:
        return f"mock:{action}:{next(self._sequence):06d}"

    def owner_of(self, upi_id: str) -> Address | None:
        with self._lock:
            entry = self._entries.get(upi_id)
            return entry.owner if entry is not None else None

    def register(self, signer: Address, upi_id: str) -> OperationResult:
        with self._lock:
            if self.require_merchant and normalize_address(signer) not in self._merchants:
                return OperationResult.failure(
                    FailureReason.REJECTED, detail="Signer is not a registered merchant"
                )
            if upi_id in self._entries:
                return OperationResult.failure(
                    FailureReason.REJECTED, detail=f"UPI id already registered: {upi_id}"
                )
            self._entries[upi_id] = _Entry(owner=normalize_address(signer))
            self._persist()
            return OperationResult.success(self._reference("register"))

    def remove(self, signer: Address, upi_id: str) -> OperationResult:
        with self._lock:
            entry = self._entries.get(upi_id)
            if entry is None:
                return OperationResult.failure(
                    FailureReason.NOT_FOUND, detail=f"UPI id not registered: {upi_id}"
                )
            if not same_address(entry.owner, signer):
                return OperationResult.failure(
                    FailureReason.REJECTED, detail="Signer does not own this UPI id"
                )
            # the escrow link goes with the mapping
            del self._entries[upi_id]
            self._persist()
            return OperationResult.success(self._reference("remove"))

    def link_escrow(self, signer: Address, upi_id: str, address: Address) -> OperationResult:
        with self._lock:
            entry = self._entries.get(upi_id)
            if entry is None:
                return OperationResult.failure(
                    FailureReason.NOT_FOUND, detail=f"UPI id not registered: {upi_id}"
                )
            if not same_address(entry.owner, signer):
                return OperationResult.failure(
                    FailureReason.REJECTED, detail="Signer does not own this UPI id"
                )
            entry.escrow = RemoteEscrow(
                address=normalize_address(address), upi_id=upi_id, created_at=self.clock()
            )
            self._persist()
            return OperationResult.success(self._reference("link"))

    def register_merchant(
        self,
        signer: Address,
        business_name: str,
        contact_info: str,
    ) -> OperationResult:
        address = normalize_address(signer)
        with self._lock:
            if address in self._merchants:
                return OperationResult.failure(
                    FailureReason.REJECTED, detail="Merchant already registered"
                )
            self._merchants[address] = MerchantProfile(
                address=address,
                business_name=business_name,
                contact_info=contact_info,
                registered_at=self.clock(),
            )
            self._persist()
            return OperationResult.success(self._reference("merchant"))

    def merchant(self, address: Address) -> MerchantProfile | None:
        with self._lock:
            return self._merchants.get(normalize_address(address))

    def stats(self) -> RegistryStats:
        with self._lock:
            return RegistryStats(
                total_merchants=len(self._merchants), total_mappings=len(self._entries)
            )

    def fund(self, address: Address, octas: int, *, sender: Address | None = None) -> str:
        """Credit ``octas`` to an account, like a devnet faucet or a payer's transfer."""

        with self._lock:
            key = normalize_address(address)
            self._balances[key] = self._balances.get(key, 0) + octas
            reference = self._reference("transfer")
            self._transactions.setdefault(key, []).append(
                AccountTransaction(
                    reference=reference,
                    timestamp=self.clock(),
                    success=True,
                    function=TRANSFER_FUNCTION,
                    sender=normalize_address(sender) if sender else None,
                    amount_octas=octas,
                )
            )
            self._persist()
            return reference

    def balance_of(self, address: Address) -> int:
        with self._lock:
            return self._balances.get(normalize_address(address), 0)

    def transactions_of(self, address: Address, limit: int) -> list[AccountTransaction]:
        with self._lock:
            history = self._transactions.get(normalize_address(address), [])
            return list(reversed(history))[:limit]

    def mappings_of(self, owner: Address) -> list[str]:
        with self._lock:
            return sorted(
                upi_id
                for upi_id, entry in self._entries.items()
                if same_address(entry.owner, owner)
            )

    def escrows_of(self, owner: Address) -> list[RemoteEscrow]:
        with self._lock:
            return [
                entry.escrow
                for _, entry in sorted(self._entries.items())
                if entry.escrow is not None and same_address(entry.owner, owner)
            ]

    def escrow_of(self, upi_id: str) -> RemoteEscrow | None:
        with self._lock:
            entry = self._entries.get(upi_id)
            return entry.escrow if entry is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(slots=True)
class InMemoryRegistryClient:
    """``RegistryClient`` backed by an ``InMemoryLedger``."""

    ledger: InMemoryLedger
    signer: Address

    def __post_init__(self) -> None:
        self.signer = normalize_address(self.signer)

    @property
    def identity(self) -> Address:
        return self.signer

    def exists(self, upi_id: str) -> bool:
        return self.ledger.owner_of(upi_id) is not None

    def owner_of(self, upi_id: str) -> Address:
        owner = self.ledger.owner_of(upi_id)
        if owner is None:
            raise MappingNotFoundError(upi_id)
        return owner

    def submit_register(self, upi_id: str) -> OperationResult:
        result = self.ledger.register(self.signer, upi_id)
        log.debug("mock register %s -> %s", upi_id, result)
        return result

    def submit_remove(self, upi_id: str) -> OperationResult:
        result = self.ledger.remove(self.signer, upi_id)
        log.debug("mock remove %s -> %s", upi_id, result)
        return result

    def submit_link_escrow(self, upi_id: str, address: Address) -> OperationResult:
        result = self.ledger.link_escrow(self.signer, upi_id, address)
        log.debug("mock link %s -> %s", upi_id, result)
        return result

    def list_mappings_of(self, owner: Address) -> list[str]:
        return self.ledger.mappings_of(owner)

    def list_escrows_of(self, owner: Address) -> list[RemoteEscrow]:
        return self.ledger.escrows_of(owner)

    def merchant_info(self, address: Address) -> MerchantProfile | None:
        return self.ledger.merchant(address)

    def submit_register_merchant(self, business_name: str, contact_info: str) -> OperationResult:
        result = self.ledger.register_merchant(self.signer, business_name, contact_info)
        log.debug("mock register merchant %s -> %s", business_name, result)
        return result

    def registry_stats(self) -> RegistryStats:
        return self.ledger.stats()

    def account_balance(self, address: Address) -> int:
        return self.ledger.balance_of(address)

    def account_transactions(self, address: Address, limit: int) -> list[AccountTransaction]:
        return self.ledger.transactions_of(address, limit)


if TYPE_CHECKING:
    _client_check: RegistryClient = InMemoryRegistryClient(InMemoryLedger(), "0x1")
