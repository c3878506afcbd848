from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from upilink.domain.model import MappingRecord, OwnershipVerdict
from upilink.domain.ownership import OwnershipVerifier
from upilink.domain.ports import MappingNotFoundError, RegistryUnavailableError
from tests.helpers.registry import MERCHANT_A, MERCHANT_B

if TYPE_CHECKING:
    from upilink.adapters.memory import InMemoryLedger
    from upilink.domain.cache import LocalCache
    from tests.helpers.registry import ScriptedRegistry


@pytest.fixture
def verifier(registry: ScriptedRegistry) -> OwnershipVerifier:
    return OwnershipVerifier(registry)


def test_owned_by_caller(verifier: OwnershipVerifier, ledger: InMemoryLedger) -> None:
    ledger.register(MERCHANT_A, "shop@bank")

    check = verifier.check("shop@bank", MERCHANT_A)

    assert check.verdict is OwnershipVerdict.OWNED
    assert check.owned
    assert check.owner == MERCHANT_A
    assert verifier.is_owner("shop@bank", MERCHANT_A)


def test_owned_by_someone_else(verifier: OwnershipVerifier, ledger: InMemoryLedger) -> None:
    ledger.register(MERCHANT_B, "shop@bank")

    check = verifier.check("shop@bank", MERCHANT_A)

    assert check.verdict is OwnershipVerdict.OWNED_BY_OTHER
    assert check.owner == MERCHANT_B
    assert check.exists
    assert not verifier.is_owner("shop@bank", MERCHANT_A)


def test_unregistered_identifier(verifier: OwnershipVerifier, registry: ScriptedRegistry) -> None:
    check = verifier.check("shop@bank", MERCHANT_A)

    assert check.verdict is OwnershipVerdict.NOT_FOUND
    assert check.owner is None
    assert ("owner_of", "shop@bank") not in registry.calls


def test_short_and_mixed_case_addresses_compare_equal(
    verifier: OwnershipVerifier,
    ledger: InMemoryLedger,
) -> None:
    ledger.register("0x1", "shop@bank")

    assert verifier.is_owner("shop@bank", "0x" + "0" * 63 + "1")
    assert verifier.is_owner("shop@bank", "0x01")


def test_removal_between_reads_counts_as_not_found(
    verifier: OwnershipVerifier,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
) -> None:
    ledger.register(MERCHANT_A, "shop@bank")
    registry.script("owner_of", MappingNotFoundError("shop@bank"))

    assert verifier.check("shop@bank", MERCHANT_A).verdict is OwnershipVerdict.NOT_FOUND


def test_cache_is_never_consulted(
    verifier: OwnershipVerifier,
    cache: LocalCache,
    ledger: InMemoryLedger,
) -> None:
    cache.save_mapping(
        MappingRecord(
            upi_id="shop@bank",
            owner_identity=MERCHANT_A,
            created_at=datetime(2024, 1, 1, tzinfo=UTC),
        )
    )
    ledger.register(MERCHANT_B, "shop@bank")

    assert verifier.check("shop@bank", MERCHANT_A).verdict is OwnershipVerdict.OWNED_BY_OTHER


def test_unreachable_registry_propagates(
    verifier: OwnershipVerifier,
    registry: ScriptedRegistry,
) -> None:
    registry.reads_unavailable = True

    with pytest.raises(RegistryUnavailableError):
        verifier.check("shop@bank", MERCHANT_A)
