"""Escrow wallet generation and linking."""

from __future__ import annotations

from dataclasses import replace
from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.locking import KeyedLock
from upilink.domain.model import EscrowWallet, OutcomeKind, is_valid_upi_id, normalize_address
from upilink.domain.outcomes import GenerateEscrowOptions, LifecycleOutcome, utcnow
from upilink.domain.remote import describe, references, submit_once

if TYPE_CHECKING:
    from upilink.domain.cache import LocalCache
    from upilink.domain.model import Address, MappingRecord
    from upilink.domain.outcomes import Clock
    from upilink.domain.ports.keys import KeyPairGenerator
    from upilink.domain.ports.registry import RegistryClient

log = getLogger(__name__)


class EscrowLinkController:
    """Generate escrow keypairs locally and link their address on the registry.

    The wallet is stored before the link is submitted, so a failed link leaves a
    recoverable ``LINKED_LOCAL_ONLY`` wallet that ``retry_link`` (or another
    ``generate`` call) can finish without creating a new keypair.
    """

    def __init__(
        self,
        *,
        registry: RegistryClient,
        cache: LocalCache,
        key_generator: KeyPairGenerator,
        locks: KeyedLock | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._key_generator = key_generator
        self._locks = locks or KeyedLock()
        self._clock = clock

    def generate(
        self,
        upi_id: str,
        options: GenerateEscrowOptions | None = None,
    ) -> LifecycleOutcome:
        options = options or GenerateEscrowOptions()
        if not is_valid_upi_id(upi_id):
            return LifecycleOutcome(OutcomeKind.INVALID_IDENTIFIER_FORMAT, upi_id)

        with self._locks.hold(upi_id):
            record = self._active_mapping(upi_id)
            if isinstance(record, LifecycleOutcome):
                return record

            existing = self._cache.get_wallet(upi_id)
            if existing is not None and not options.regenerate:
                if existing.is_linked:
                    return LifecycleOutcome(
                        OutcomeKind.ALREADY_LINKED,
                        upi_id,
                        wallet_address=existing.address,
                        detail="pass regenerate to replace the wallet",
                    )
                log.info("Reusing unlinked escrow wallet %s for %s", existing.address, upi_id)
                return self._link(record, existing, generated=False)

            if existing is not None:
                log.warning(
                    "Replacing escrow wallet %s of %s; its key material will be discarded "
                    "and any funds held by it become unrecoverable",
                    existing.address,
                    upi_id,
                )
                prompt = (
                    f"Discard escrow wallet {existing.address} of {upi_id}? "
                    "Funds it holds cannot be recovered."
                )
                if not options.approved(prompt):
                    return LifecycleOutcome(
                        OutcomeKind.CANCELLED,
                        upi_id,
                        wallet_address=existing.address,
                        detail="wallet replacement declined",
                    )

            keypair = self._key_generator()
            wallet = EscrowWallet(
                upi_id=upi_id,
                address=normalize_address(keypair.address),
                key_material=keypair.key_material,
                created_at=self._clock(),
            )
            self._cache.save_wallet(wallet)
            log.info("Generated escrow wallet %s for %s", wallet.address, upi_id)
            replaced = existing.address if existing is not None else None
            return self._link(record, wallet, generated=True, replaced=replaced)

    def retry_link(self, upi_id: str) -> LifecycleOutcome:
        """Re-submit the link of a stored, unlinked wallet."""

        with self._locks.hold(upi_id):
            record = self._active_mapping(upi_id)
            if isinstance(record, LifecycleOutcome):
                return record

            wallet = self._cache.get_wallet(upi_id)
            if wallet is None:
                return LifecycleOutcome(
                    OutcomeKind.NOT_FOUND,
                    upi_id,
                    detail="no escrow wallet stored for this UPI id",
                )
            if wallet.is_linked:
                return LifecycleOutcome(
                    OutcomeKind.ALREADY_LINKED,
                    upi_id,
                    wallet_address=wallet.address,
                )
            return self._link(record, wallet, generated=False)

    def _active_mapping(self, upi_id: str) -> MappingRecord | LifecycleOutcome:
        record = self._cache.get_mapping(upi_id)
        if record is None:
            return LifecycleOutcome(
                OutcomeKind.NOT_FOUND,
                upi_id,
                detail="no local mapping; register or reconcile first",
            )
        if not record.is_active:
            return LifecycleOutcome(
                OutcomeKind.NOT_ACTIVE,
                upi_id,
                detail=f"mapping is {record.status}",
                record=record,
            )
        return record

    def _link(
        self,
        record: MappingRecord,
        wallet: EscrowWallet,
        *,
        generated: bool,
        replaced: Address | None = None,
    ) -> LifecycleOutcome:
        upi_id = record.upi_id
        # callers without a confirm callback learn about the discarded wallet here
        notice = None
        if replaced is not None:
            notice = f"replaced escrow wallet {replaced}; its key material was discarded"
        result = submit_once(
            f"link escrow {wallet.address} to {upi_id}",
            lambda: self._registry.submit_link_escrow(upi_id, wallet.address),
        )
        if not result.committed:
            return LifecycleOutcome(
                OutcomeKind.LINKED_LOCAL_ONLY,
                upi_id,
                local_state_changed=generated,
                references=references(result),
                detail="; ".join(filter(None, (describe(result), notice))),
                record=record,
                wallet_address=wallet.address,
            )

        linked_record = replace(record, escrow_address=wallet.address)
        self._cache.link_wallet(wallet.linked(), linked_record)
        return LifecycleOutcome(
            OutcomeKind.LINKED,
            upi_id,
            local_state_changed=True,
            references=references(result),
            detail=notice,
            record=linked_record,
            wallet_address=wallet.address,
        )
