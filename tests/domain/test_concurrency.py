"""Concurrent lifecycle operations and reconciliation on the same identifier."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from upilink.adapters.memory import InMemoryLedger
from upilink.domain.lifecycle import MappingLifecycleController
from upilink.domain.locking import KeyedLock
from upilink.domain.model import OutcomeKind
from upilink.domain.reconciliation import ReconciliationEngine
from tests.helpers.cache import make_local_cache
from tests.helpers.registry import MERCHANT_A, MERCHANT_B, ScriptedRegistry

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from upilink.domain.cache import LocalCache
    from upilink.domain.reconciliation import ReconciliationReport


def test_only_one_concurrent_register_submits(clock: Callable[[], datetime]) -> None:
    ledger = InMemoryLedger(clock=clock)
    registry = ScriptedRegistry(ledger, MERCHANT_A)
    cache, store = make_local_cache()
    lifecycle = MappingLifecycleController(registry=registry, cache=cache, clock=clock)
    barrier = threading.Barrier(8)

    def attempt() -> OutcomeKind:
        barrier.wait()
        return lifecycle.register("shop@bank", MERCHANT_A).kind

    with ThreadPoolExecutor(max_workers=8) as pool:
        kinds = list(pool.map(lambda _: attempt(), range(8)))

    assert kinds.count(OutcomeKind.REGISTERED) == 1
    assert kinds.count(OutcomeKind.ADOPTED) == 7
    assert len(registry.submits("submit_register")) == 1
    assert list(store.mappings) == ["shop@bank"]


def test_competing_merchants_cannot_both_own(clock: Callable[[], datetime]) -> None:
    ledger = InMemoryLedger(clock=clock)
    locks = KeyedLock()
    controllers = []
    for merchant in (MERCHANT_A, MERCHANT_B):
        cache, _ = make_local_cache()
        controllers.append(
            (
                merchant,
                MappingLifecycleController(
                    registry=ScriptedRegistry(ledger, merchant),
                    cache=cache,
                    locks=locks,
                    clock=clock,
                ),
            )
        )
    barrier = threading.Barrier(len(controllers))

    def attempt(pair: tuple[str, MappingLifecycleController]) -> OutcomeKind:
        merchant, controller = pair
        barrier.wait()
        return controller.register("shop@bank", merchant).kind

    with ThreadPoolExecutor(max_workers=len(controllers)) as pool:
        kinds = sorted(pool.map(attempt, controllers))

    assert kinds == sorted([OutcomeKind.REGISTERED, OutcomeKind.ALREADY_OWNED_BY_OTHER])
    assert ledger.owner_of("shop@bank") in {MERCHANT_A, MERCHANT_B}


def test_update_and_delete_on_same_identifier_serialise(
    clock: Callable[[], datetime],
) -> None:
    ledger = InMemoryLedger(clock=clock)
    registry = ScriptedRegistry(ledger, MERCHANT_A)
    cache, _ = make_local_cache()
    lifecycle = MappingLifecycleController(registry=registry, cache=cache, clock=clock)
    lifecycle.register("shop@bank", MERCHANT_A)
    barrier = threading.Barrier(2)

    def update() -> OutcomeKind:
        barrier.wait()
        return lifecycle.update("shop@bank", "store@bank").kind

    def delete() -> OutcomeKind:
        barrier.wait()
        return lifecycle.delete("shop@bank").kind

    with ThreadPoolExecutor(max_workers=2) as pool:
        updated = pool.submit(update)
        deleted = pool.submit(delete)
        outcomes = {updated.result(timeout=10), deleted.result(timeout=10)}

    # whichever ran second saw the first one's committed result
    assert outcomes in (
        {OutcomeKind.UPDATED, OutcomeKind.NOT_FOUND},
        {OutcomeKind.DELETED, OutcomeKind.NOT_FOUND},
    )
    assert ledger.owner_of("shop@bank") is None


type _Engines = tuple[
    InMemoryLedger,
    ScriptedRegistry,
    LocalCache,
    MappingLifecycleController,
    ReconciliationEngine,
]


def _engines(clock: Callable[[], datetime]) -> _Engines:
    ledger = InMemoryLedger(clock=clock)
    registry = ScriptedRegistry(ledger, MERCHANT_A)
    cache, _ = make_local_cache()
    locks = KeyedLock()
    lifecycle = MappingLifecycleController(
        registry=registry, cache=cache, locks=locks, clock=clock
    )
    reconciler = ReconciliationEngine(registry=registry, cache=cache, locks=locks, clock=clock)
    return ledger, registry, cache, lifecycle, reconciler


def _cached_ids(cache: LocalCache) -> list[str]:
    return [record.upi_id for record in cache.mappings_of(MERCHANT_A)]


def test_reconcile_waits_for_in_flight_update(clock: Callable[[], datetime]) -> None:
    ledger, registry, cache, lifecycle, reconciler = _engines(clock)
    lifecycle.register("shop@bank", MERCHANT_A)
    reports: list[ReconciliationReport] = []
    worker = threading.Thread(target=lambda: reports.append(reconciler.reconcile(MERCHANT_A)))
    blocked: list[bool] = []

    def start_reconcile(method: str, upi_id: str) -> None:
        if method == "submit_register" and not blocked:
            worker.start()
            worker.join(timeout=0.2)
            blocked.append(worker.is_alive())

    registry.before_submit = start_reconcile

    outcome = lifecycle.update("shop@bank", "store@bank")
    worker.join(timeout=10)

    assert outcome.kind is OutcomeKind.UPDATED
    assert blocked == [True]
    assert not worker.is_alive()
    assert reports[0].mappings == ("store@bank",)
    assert not reports[0].drifted
    assert _cached_ids(cache) == ledger.mappings_of(MERCHANT_A) == ["store@bank"]


def test_update_waits_for_in_flight_reconcile(clock: Callable[[], datetime]) -> None:
    ledger, registry, cache, lifecycle, reconciler = _engines(clock)
    lifecycle.register("shop@bank", MERCHANT_A)
    outcomes: list[OutcomeKind] = []
    worker = threading.Thread(
        target=lambda: outcomes.append(lifecycle.update("shop@bank", "store@bank").kind)
    )
    blocked: list[bool] = []

    def start_update(method: str) -> None:
        if method == "list_escrows_of" and not blocked:
            worker.start()
            worker.join(timeout=0.2)
            blocked.append(worker.is_alive())

    registry.before_read = start_update

    report = reconciler.reconcile(MERCHANT_A)
    worker.join(timeout=10)

    assert blocked == [True]
    assert report.mappings == ("shop@bank",)
    assert not worker.is_alive()
    assert outcomes == [OutcomeKind.UPDATED]
    assert _cached_ids(cache) == ledger.mappings_of(MERCHANT_A) == ["store@bank"]
