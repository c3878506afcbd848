from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from upilink.adapters.memory import InMemoryLedger
from upilink.adapters.sqlalchemy.migrations import upgrade_head
from upilink.adapters.sqlalchemy.unit_of_work import SqlAlchemyCacheUnitOfWork, shutdown, startup
from upilink.domain.escrow import EscrowLinkController
from upilink.domain.lifecycle import MappingLifecycleController
from upilink.domain.locking import KeyedLock
from upilink.domain.merchants import MerchantAccountController
from upilink.domain.reconciliation import ReconciliationEngine
from tests.helpers.cache import CacheStore, make_local_cache
from tests.helpers.keys import SequentialKeyGenerator
from tests.helpers.registry import MERCHANT_A, ScriptedRegistry, fixed_clock

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from datetime import datetime

    from upilink.domain.cache import LocalCache


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return fixed_clock()


@pytest.fixture
def ledger(clock: Callable[[], datetime]) -> InMemoryLedger:
    return InMemoryLedger(clock=clock)


@pytest.fixture
def registry(ledger: InMemoryLedger) -> ScriptedRegistry:
    return ScriptedRegistry(ledger, MERCHANT_A)


@pytest.fixture
def cache_store() -> CacheStore:
    return CacheStore()


@pytest.fixture
def cache(cache_store: CacheStore) -> LocalCache:
    local_cache, _ = make_local_cache(cache_store)
    return local_cache


@pytest.fixture
def locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture
def key_generator() -> SequentialKeyGenerator:
    return SequentialKeyGenerator()


@pytest.fixture
def lifecycle(
    registry: ScriptedRegistry,
    cache: LocalCache,
    locks: KeyedLock,
    clock: Callable[[], datetime],
) -> MappingLifecycleController:
    return MappingLifecycleController(registry=registry, cache=cache, locks=locks, clock=clock)


@pytest.fixture
def escrow(
    registry: ScriptedRegistry,
    cache: LocalCache,
    key_generator: SequentialKeyGenerator,
    locks: KeyedLock,
    clock: Callable[[], datetime],
) -> EscrowLinkController:
    return EscrowLinkController(
        registry=registry,
        cache=cache,
        key_generator=key_generator,
        locks=locks,
        clock=clock,
    )


@pytest.fixture
def reconciler(
    registry: ScriptedRegistry,
    cache: LocalCache,
    locks: KeyedLock,
    clock: Callable[[], datetime],
) -> ReconciliationEngine:
    return ReconciliationEngine(registry=registry, cache=cache, locks=locks, clock=clock)


@pytest.fixture
def merchants(
    registry: ScriptedRegistry,
    cache: LocalCache,
    clock: Callable[[], datetime],
) -> MerchantAccountController:
    return MerchantAccountController(registry=registry, cache=cache, clock=clock)


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyCacheUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyCacheUnitOfWork:
        return SqlAlchemyCacheUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()
