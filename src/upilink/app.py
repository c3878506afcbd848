"""Application composition: build controllers from configuration."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from upilink.adapters.aptos import AptosRegistryClient
from upilink.adapters.keys import Ed25519KeyPairGenerator
from upilink.adapters.memory import InMemoryLedger, InMemoryRegistryClient
from upilink.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyCacheUnitOfWork,
    is_started,
    startup,
)
from upilink.config import get_registry_config, get_storage_config
from upilink.domain.cache import LocalCache
from upilink.domain.escrow import EscrowLinkController
from upilink.domain.lifecycle import MappingLifecycleController
from upilink.domain.locking import KeyedLock
from upilink.domain.merchants import MerchantAccountController
from upilink.domain.outcomes import utcnow
from upilink.domain.ownership import OwnershipVerifier
from upilink.domain.reconciliation import ReconciliationEngine, ReconciliationReport

if TYPE_CHECKING:
    from collections.abc import Callable

    from upilink.config import RegistryConfig, StorageConfig
    from upilink.domain.outcomes import Clock
    from upilink.domain.ports import CacheUnitOfWork, KeyPairGenerator, RegistryClient

type UnitOfWorkFactory = Callable[[], CacheUnitOfWork]

log = getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Services:
    """Controllers sharing one registry client, cache and lock arena."""

    registry: RegistryClient
    cache: LocalCache
    locks: KeyedLock
    verifier: OwnershipVerifier
    lifecycle: MappingLifecycleController
    escrow: EscrowLinkController
    reconciliation: ReconciliationEngine
    merchants: MerchantAccountController

    @property
    def identity(self) -> str:
        return self.lifecycle.identity


def build_registry(
    config: RegistryConfig | None = None,
    *,
    storage: StorageConfig | None = None,
) -> RegistryClient:
    """Return the registry client selected by ``UPILINK_REGISTRY_MODE``."""

    effective = config or get_registry_config()
    if effective.mode == "aptos":
        client = AptosRegistryClient(effective)
        log.info("Using Aptos registry on %s as %s", effective.network, client.identity)
        return client

    ledger_path = (storage or get_storage_config()).mock_ledger_path()
    log.info("Using mock registry ledger at %s", ledger_path)
    return InMemoryRegistryClient(InMemoryLedger(path=ledger_path), effective.mock_identity)


def build_services(
    *,
    registry: RegistryClient | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    key_generator: KeyPairGenerator | None = None,
    clock: Clock = utcnow,
) -> Services:
    """Wire the controllers; defaults come from the environment."""

    if unit_of_work_factory is None:
        if not is_started():
            startup()
        unit_of_work_factory = SqlAlchemyCacheUnitOfWork
    effective_registry = registry or build_registry()
    cache = LocalCache(unit_of_work_factory)
    locks = KeyedLock()
    verifier = OwnershipVerifier(effective_registry)

    return Services(
        registry=effective_registry,
        cache=cache,
        locks=locks,
        verifier=verifier,
        lifecycle=MappingLifecycleController(
            registry=effective_registry,
            cache=cache,
            verifier=verifier,
            locks=locks,
            clock=clock,
        ),
        escrow=EscrowLinkController(
            registry=effective_registry,
            cache=cache,
            key_generator=key_generator or Ed25519KeyPairGenerator(),
            locks=locks,
            clock=clock,
        ),
        reconciliation=ReconciliationEngine(
            registry=effective_registry,
            cache=cache,
            locks=locks,
            clock=clock,
        ),
        merchants=MerchantAccountController(
            registry=effective_registry,
            cache=cache,
            clock=clock,
        ),
    )


def sync_own_mappings(services: Services) -> ReconciliationReport:
    """Reconcile the cache with the registry for the signing identity."""

    return services.reconciliation.reconcile(services.identity)
