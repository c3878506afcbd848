"""Replace the local view of an owner's mappings with registry state."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.locking import KeyedLock
from upilink.domain.model import MappingRecord, normalize_address, same_address
from upilink.domain.outcomes import utcnow
from upilink.domain.ports.registry import RegistryError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from upilink.domain.cache import LocalCache
    from upilink.domain.model import Address, EscrowWallet
    from upilink.domain.outcomes import Clock
    from upilink.domain.ports.registry import RegistryClient, RemoteEscrow

log = getLogger(__name__)


class ReconciliationError(RuntimeError):
    """Raised when registry state could not be fetched; the cache is untouched."""


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    owner: Address
    mappings: tuple[str, ...] = ()
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    linked: tuple[str, ...] = ()
    unlinked: tuple[str, ...] = ()

    @property
    def drifted(self) -> bool:
        return any((self.added, self.removed, self.updated, self.linked, self.unlinked))


class ReconciliationEngine:
    """Pull authoritative registry state for one owner and overwrite the cache.

    Remote state wins for every field except ``created_at`` and escrow key
    material, which only exist locally. Running it twice without a remote
    change leaves the cache as it was after the first run.

    Registry state is read and applied while the locks of every identifier it
    touches are held. When the registry names an identifier that is not locked
    yet, the locks are widened and the read is repeated.
    """

    def __init__(
        self,
        *,
        registry: RegistryClient,
        cache: LocalCache,
        locks: KeyedLock | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._locks = locks or KeyedLock()
        self._clock = clock

    def reconcile(self, owner: Address) -> ReconciliationReport:
        owner_id = normalize_address(owner)
        keys = {record.upi_id for record in self._cache.mappings_of(owner_id)}
        while True:
            # registry state is only trusted while every identifier it names is locked
            with self._locks.hold(*keys):
                remote_ids, remote_escrows = self._fetch(owner_id)
                local = {record.upi_id: record for record in self._cache.mappings_of(owner_id)}
                needed = set(remote_ids) | set(local)
                if needed <= keys:
                    report = self._apply(owner_id, remote_ids, remote_escrows, local)
                    break
            log.debug("Widening reconciliation locks for %s by %s", owner_id, needed - keys)
            keys |= needed

        log.info(
            "Reconciled %s: %d mappings, added=%s removed=%s updated=%s linked=%s unlinked=%s",
            owner_id,
            len(report.mappings),
            report.added,
            report.removed,
            report.updated,
            report.linked,
            report.unlinked,
        )
        return report

    def _fetch(self, owner_id: Address) -> tuple[list[str], Sequence[RemoteEscrow]]:
        try:
            remote_ids = list(dict.fromkeys(self._registry.list_mappings_of(owner_id)))
            remote_escrows = self._registry.list_escrows_of(owner_id)
        except RegistryError as exc:
            raise ReconciliationError(f"Could not fetch registry state for {owner_id}") from exc
        return remote_ids, remote_escrows

    def _apply(
        self,
        owner_id: Address,
        remote_ids: list[str],
        remote_escrows: Sequence[RemoteEscrow],
        local: dict[str, MappingRecord],
    ) -> ReconciliationReport:
        escrow_by_upi = _index_escrows(remote_escrows, remote_ids)
        records: list[MappingRecord] = []
        added: list[str] = []
        updated: list[str] = []
        for upi_id in remote_ids:
            existing = local.get(upi_id) or self._cache.get_mapping(upi_id)
            escrow = escrow_by_upi.get(upi_id)
            merged = MappingRecord(
                upi_id=upi_id,
                owner_identity=owner_id,
                created_at=existing.created_at if existing is not None else self._clock(),
                escrow_address=normalize_address(escrow.address) if escrow else None,
            )
            if existing is None:
                added.append(upi_id)
            elif existing != merged:
                updated.append(upi_id)
            records.append(merged)

        removed = sorted(set(local) - set(remote_ids))
        scope = set(remote_ids) | set(local)
        wallets, linked, unlinked = self._reconcile_wallets(scope, remote_ids, escrow_by_upi)

        report = ReconciliationReport(
            owner=owner_id,
            mappings=tuple(sorted(remote_ids)),
            added=tuple(sorted(added)),
            removed=tuple(removed),
            updated=tuple(sorted(updated)),
            linked=tuple(linked),
            unlinked=tuple(unlinked),
        )
        if report.drifted:
            changed = set(added) | set(updated)
            self._cache.replace_owner_state(
                records=[record for record in records if record.upi_id in changed],
                removed=removed,
                wallets=wallets,
            )
        return report

    def _reconcile_wallets(
        self,
        scope: set[str],
        remote_ids: Sequence[str],
        escrow_by_upi: dict[str, RemoteEscrow],
    ) -> tuple[list[EscrowWallet], list[str], list[str]]:
        changed: list[EscrowWallet] = []
        linked: list[str] = []
        unlinked: list[str] = []
        registered = set(remote_ids)
        for wallet in self._cache.wallets():
            if wallet.upi_id not in scope:
                continue
            escrow = escrow_by_upi.get(wallet.upi_id)
            should_link = (
                wallet.upi_id in registered
                and escrow is not None
                and same_address(escrow.address, wallet.address)
            )
            if should_link and not wallet.is_linked:
                changed.append(wallet.linked())
                linked.append(wallet.upi_id)
            elif not should_link and wallet.is_linked:
                # key material stays; only the link flag follows the registry
                changed.append(wallet.unlinked())
                unlinked.append(wallet.upi_id)
        return changed, linked, unlinked


def _index_escrows(
    escrows: Sequence[RemoteEscrow],
    remote_ids: Sequence[str],
) -> dict[str, RemoteEscrow]:
    registered = set(remote_ids)
    indexed: dict[str, RemoteEscrow] = {}
    for escrow in escrows:
        if escrow.upi_id in registered:
            indexed[escrow.upi_id] = escrow
    return indexed
