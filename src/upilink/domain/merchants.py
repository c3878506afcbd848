"""Merchant registration and read-only account queries for the signing identity."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from upilink.domain.model import (
    EscrowBalance,
    MerchantProfile,
    OutcomeKind,
    merchant_details_problem,
    normalize_address,
)
from upilink.domain.outcomes import MerchantOptions, MerchantOutcome, utcnow
from upilink.domain.ports.registry import RegistryError
from upilink.domain.remote import describe, failure_kind, references, submit_once

if TYPE_CHECKING:
    from upilink.domain.cache import LocalCache
    from upilink.domain.model import AccountTransaction, Address, RegistryStats
    from upilink.domain.outcomes import Clock
    from upilink.domain.ports.registry import RegistryClient

log = getLogger(__name__)


class MerchantAccountController:
    """The registry only accepts UPI ids from registered merchants.

    ``register`` is idempotent: an identity that is already registered gets
    ``ALREADY_REGISTERED`` with the recorded profile and no write is submitted.
    The remaining methods are plain reads; registry failures propagate.
    """

    def __init__(
        self,
        *,
        registry: RegistryClient,
        cache: LocalCache,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._cache = cache
        self._clock = clock

    @property
    def identity(self) -> Address:
        return normalize_address(self._registry.identity)

    def profile(self) -> MerchantProfile | None:
        return self._registry.merchant_info(self.identity)

    def register(
        self,
        business_name: str,
        contact_info: str,
        options: MerchantOptions | None = None,
    ) -> MerchantOutcome:
        options = options or MerchantOptions()
        identity = self.identity
        business_name, contact_info = business_name.strip(), contact_info.strip()
        if problem := merchant_details_problem(business_name, contact_info):
            return MerchantOutcome(OutcomeKind.INVALID_MERCHANT_DETAILS, identity, detail=problem)

        try:
            existing = self._registry.merchant_info(identity)
        except RegistryError as exc:
            return MerchantOutcome(OutcomeKind.REMOTE_UNAVAILABLE, identity, detail=str(exc))
        if existing is not None:
            return MerchantOutcome(
                OutcomeKind.ALREADY_REGISTERED,
                identity,
                detail=f"registered as {existing.business_name}",
                profile=existing,
            )

        if not options.approved(f"Register {identity} as merchant {business_name!r}?"):
            return MerchantOutcome(OutcomeKind.CANCELLED, identity)

        result = submit_once(
            f"register merchant {identity}",
            lambda: self._registry.submit_register_merchant(business_name, contact_info),
        )
        if not result.committed:
            return MerchantOutcome(
                failure_kind(result),
                identity,
                references=references(result),
                detail=describe(result),
            )
        log.info("Registered %s as merchant %r", identity, business_name)
        return MerchantOutcome(
            OutcomeKind.MERCHANT_REGISTERED,
            identity,
            references=references(result),
            profile=MerchantProfile(
                address=identity,
                business_name=business_name,
                contact_info=contact_info,
                registered_at=self._clock(),
            ),
        )

    def stats(self) -> RegistryStats:
        return self._registry.registry_stats()

    def escrow_balance(self, upi_id: str) -> EscrowBalance | None:
        """Balance of the escrow wallet stored for ``upi_id``; ``None`` without a wallet."""

        wallet = self._cache.get_wallet(upi_id)
        if wallet is None:
            return None
        octas = self._registry.account_balance(wallet.address)
        return EscrowBalance(upi_id=upi_id, address=wallet.address, octas=octas)

    def escrow_history(self, upi_id: str, limit: int = 10) -> list[AccountTransaction] | None:
        wallet = self._cache.get_wallet(upi_id)
        if wallet is None:
            return None
        return list(self._registry.account_transactions(wallet.address, limit))
