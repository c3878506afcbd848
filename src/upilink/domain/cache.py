"""Local, advisory cache of mapping records and escrow wallets."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.model import normalize_address

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from upilink.domain.model import Address, EscrowWallet, MappingRecord
    from upilink.domain.ports.unit_of_work import CacheUnitOfWork

log = getLogger(__name__)


class LocalCache:
    """Facade over the cache unit of work.

    Each method runs in its own unit of work; methods touching several rows
    commit them together or not at all.
    """

    def __init__(self, unit_of_work_factory: Callable[[], CacheUnitOfWork]) -> None:
        self._uow_factory = unit_of_work_factory

    # mappings ---------------------------------------------------------------

    def get_mapping(self, upi_id: str) -> MappingRecord | None:
        with self._uow_factory() as uow:
            return uow.repositories.mappings.get(upi_id)

    def mappings_of(self, owner: Address) -> list[MappingRecord]:
        with self._uow_factory() as uow:
            records = uow.repositories.mappings.list_by_owner(normalize_address(owner))
            return sorted(records, key=lambda record: record.upi_id)

    def save_mapping(self, record: MappingRecord, *, unlink_wallet: bool = False) -> None:
        with self._uow_factory() as uow:
            uow.repositories.mappings.save(record)
            if unlink_wallet:
                self._unlink(uow, record.upi_id)
            uow.commit()

    def drop_mapping(self, upi_id: str) -> bool:
        """Remove the record and clear its wallet link; key material is kept."""

        with self._uow_factory() as uow:
            existed = uow.repositories.mappings.get(upi_id) is not None
            uow.repositories.mappings.remove(upi_id)
            self._unlink(uow, upi_id)
            uow.commit()
        log.debug("Dropped local mapping %s (existed=%s)", upi_id, existed)
        return existed

    def rekey_mapping(self, old_upi_id: str, record: MappingRecord) -> None:
        """Move a record (and its wallet) from ``old_upi_id`` to ``record.upi_id``."""

        with self._uow_factory() as uow:
            repos = uow.repositories
            repos.mappings.remove(old_upi_id)
            repos.mappings.save(record)
            wallet = repos.wallets.get(old_upi_id)
            # never overwrite key material already stored under the new id
            if wallet is not None and repos.wallets.get(record.upi_id) is None:
                repos.wallets.remove(old_upi_id)
                repos.wallets.save(wallet.moved_to(record.upi_id))
            elif wallet is not None:
                log.warning(
                    "Wallet of %s kept under the old id; %s already has one",
                    old_upi_id,
                    record.upi_id,
                )
            uow.commit()

    # wallets ----------------------------------------------------------------

    def get_wallet(self, upi_id: str) -> EscrowWallet | None:
        with self._uow_factory() as uow:
            return uow.repositories.wallets.get(upi_id)

    def wallet_by_address(self, address: Address) -> EscrowWallet | None:
        with self._uow_factory() as uow:
            return uow.repositories.wallets.get_by_address(normalize_address(address))

    def wallets(self) -> list[EscrowWallet]:
        with self._uow_factory() as uow:
            return sorted(uow.repositories.wallets.list_all(), key=lambda w: w.upi_id)

    def save_wallet(self, wallet: EscrowWallet) -> None:
        with self._uow_factory() as uow:
            uow.repositories.wallets.save(wallet)
            uow.commit()

    def link_wallet(self, wallet: EscrowWallet, record: MappingRecord) -> None:
        """Persist a committed link on both the wallet and its mapping."""

        with self._uow_factory() as uow:
            uow.repositories.wallets.save(wallet)
            uow.repositories.mappings.save(record)
            uow.commit()

    # reconciliation ---------------------------------------------------------

    def replace_owner_state(
        self,
        *,
        records: Iterable[MappingRecord],
        removed: Iterable[str],
        wallets: Iterable[EscrowWallet],
    ) -> None:
        with self._uow_factory() as uow:
            repos = uow.repositories
            for upi_id in removed:
                repos.mappings.remove(upi_id)
            for record in records:
                repos.mappings.save(record)
            for wallet in wallets:
                repos.wallets.save(wallet)
            uow.commit()

    @staticmethod
    def _unlink(uow: CacheUnitOfWork, upi_id: str) -> None:
        wallet = uow.repositories.wallets.get(upi_id)
        if wallet is not None and wallet.is_linked:
            uow.repositories.wallets.save(wallet.unlinked())
