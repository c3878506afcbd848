"""End-to-end wiring against the migrated sqlite cache and a mock ledger."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from upilink.adapters.aptos import AptosRegistryClient
from upilink.adapters.keys import Ed25519Signer
from upilink.adapters.memory import InMemoryLedger, InMemoryRegistryClient
from upilink.app import build_registry, build_services, sync_own_mappings
from upilink.config import RegistryConfig, StorageConfig
from upilink.domain.model import MappingStatus, OutcomeKind
from tests.helpers.keys import SequentialKeyGenerator
from tests.helpers.registry import MERCHANT_A, ScriptedRegistry, fixed_clock, rejected

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from upilink.adapters.sqlalchemy.unit_of_work import SqlAlchemyCacheUnitOfWork
    from upilink.app import Services

W1 = "0x" + "1".rjust(64, "0")


@pytest.fixture
def app_registry() -> ScriptedRegistry:
    return ScriptedRegistry(InMemoryLedger(clock=fixed_clock()), MERCHANT_A)


@pytest.fixture
def sql_services(
    sqlite_unit_of_work: Callable[[], SqlAlchemyCacheUnitOfWork],
    app_registry: ScriptedRegistry,
) -> Services:
    _ = sqlite_unit_of_work
    return build_services(
        registry=app_registry,
        key_generator=SequentialKeyGenerator(),
        clock=fixed_clock(),
    )


def test_controllers_share_lock_arena_and_registry(sql_services: Services) -> None:
    assert sql_services.identity == MERCHANT_A
    assert sql_services.verifier is not None
    assert sql_services.registry is sql_services.lifecycle._registry  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    assert sql_services.locks is sql_services.lifecycle._locks  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    assert sql_services.locks is sql_services.escrow._locks  # noqa: SLF001  # type: ignore[reportPrivateUsage]
    assert sql_services.registry is sql_services.merchants._registry  # noqa: SLF001  # type: ignore[reportPrivateUsage]


def test_failed_update_restores_mapping_and_escrow(
    sql_services: Services,
    app_registry: ScriptedRegistry,
) -> None:
    lifecycle = sql_services.lifecycle
    assert lifecycle.register("shop@bank", MERCHANT_A).kind is OutcomeKind.REGISTERED
    assert sql_services.escrow.generate("shop@bank").kind is OutcomeKind.LINKED
    before = sql_services.cache.get_mapping("shop@bank")
    app_registry.script("submit_register", rejected("E_NETWORK"))

    outcome = lifecycle.update("shop@bank", "store@bank")

    assert outcome.kind is OutcomeKind.UPDATE_FAILED_RESTORED
    assert outcome.restored is True
    record = sql_services.cache.get_mapping("shop@bank")
    assert record == before
    assert record is not None
    assert record.escrow_address == W1
    assert record.status is MappingStatus.ACTIVE
    assert sql_services.cache.get_mapping("store@bank") is None
    wallet = sql_services.cache.get_wallet("shop@bank")
    assert wallet is not None
    assert wallet.linked_upi_id == "shop@bank"


def test_successful_update_and_sync_agree(
    sql_services: Services,
) -> None:
    sql_services.lifecycle.register("shop@bank", MERCHANT_A)
    sql_services.lifecycle.update("shop@bank", "store@bank")

    report = sync_own_mappings(sql_services)

    assert report.mappings == ("store@bank",)
    assert not report.drifted


def test_build_registry_mock_mode_persists_ledger(tmp_path: Path) -> None:
    storage = StorageConfig(data_dir=tmp_path)
    config = RegistryConfig(mode="mock", mock_identity="0xA11CE")

    first = build_registry(config, storage=storage)
    assert isinstance(first, InMemoryRegistryClient)
    assert first.identity == "0x" + "a11ce".rjust(64, "0")
    assert first.submit_register("shop@bank").committed

    second = build_registry(config, storage=storage)

    assert second.exists("shop@bank")
    assert (tmp_path / "mock_ledger.json").exists()


def test_build_registry_aptos_mode() -> None:
    seed = "0x" + "22" * 32
    config = RegistryConfig(
        mode="aptos",
        node_url="https://node.test/v1",
        contract_address="0xc",
        private_key=seed,
    )

    client = build_registry(config)

    assert isinstance(client, AptosRegistryClient)
    assert client.identity == Ed25519Signer.from_hex(seed).address
