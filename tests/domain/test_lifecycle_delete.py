from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from upilink.domain.model import EscrowWallet, MappingRecord, MappingStatus, OutcomeKind
from upilink.domain.outcomes import DeleteOptions
from tests.helpers.registry import MERCHANT_A, MERCHANT_B, timed_out

if TYPE_CHECKING:
    from upilink.adapters.memory import InMemoryLedger
    from upilink.domain.cache import LocalCache
    from upilink.domain.escrow import EscrowLinkController
    from upilink.domain.lifecycle import MappingLifecycleController
    from tests.helpers.registry import ScriptedRegistry

CREATED = datetime(2024, 1, 1, tzinfo=UTC)


def test_delete_removes_remote_and_local_record(
    lifecycle: MappingLifecycleController,
    ledger: InMemoryLedger,
    cache: LocalCache,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)

    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.DELETED
    assert outcome.local_state_changed
    assert outcome.references == ("mock:remove:000002",)
    assert ledger.owner_of("shop@bank") is None
    assert cache.get_mapping("shop@bank") is None
    assert lifecycle.state_of("shop@bank") is MappingStatus.UNREGISTERED


def test_delete_keeps_key_material_and_clears_link(
    lifecycle: MappingLifecycleController,
    escrow: EscrowLinkController,
    cache: LocalCache,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    escrow.generate("shop@bank")

    lifecycle.delete("shop@bank")

    wallet = cache.get_wallet("shop@bank")
    assert wallet is not None
    assert wallet.key_material == "secret-1"
    assert not wallet.is_linked


def test_failed_remove_reports_delete_failed_and_keeps_record(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
    cache: LocalCache,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    before = cache.get_mapping("shop@bank")
    registry.script("submit_remove", timed_out())

    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.DELETE_FAILED
    assert outcome.kind.retryable
    assert not outcome.local_state_changed
    assert outcome.detail is not None
    assert outcome.detail.startswith("timeout")
    assert cache.get_mapping("shop@bank") == before
    assert ledger.owner_of("shop@bank") == MERCHANT_A
    assert lifecycle.state_of("shop@bank") is MappingStatus.ACTIVE


def test_delete_of_drifted_local_record_is_local_only(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
    cache: LocalCache,
) -> None:
    cache.save_mapping(
        MappingRecord(upi_id="shop@bank", owner_identity=MERCHANT_A, created_at=CREATED)
    )

    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.DELETED_LOCAL_ONLY
    assert outcome.local_state_changed
    assert registry.submits() == []
    assert cache.get_mapping("shop@bank") is None


def test_delete_of_drifted_record_keeps_wallet_key_material(
    lifecycle: MappingLifecycleController,
    cache: LocalCache,
) -> None:
    cache.save_mapping(
        MappingRecord(
            upi_id="shop@bank",
            owner_identity=MERCHANT_A,
            created_at=CREATED,
            escrow_address="0x" + "e" * 64,
        )
    )
    cache.save_wallet(
        EscrowWallet(
            upi_id="shop@bank",
            address="0x" + "e" * 64,
            key_material="secret",
            created_at=CREATED,
            linked_upi_id="shop@bank",
        )
    )

    lifecycle.delete("shop@bank")

    wallet = cache.get_wallet("shop@bank")
    assert wallet is not None
    assert wallet.key_material == "secret"
    assert wallet.linked_upi_id is None


def test_delete_of_unknown_identifier_is_not_found(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
) -> None:
    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.NOT_FOUND
    assert not outcome.local_state_changed
    assert registry.submits() == []


def test_delete_of_foreign_identifier_is_not_owner(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
) -> None:
    ledger.register(MERCHANT_B, "shop@bank")

    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.NOT_OWNER
    assert registry.submits() == []
    assert ledger.owner_of("shop@bank") == MERCHANT_B


def test_delete_with_unreachable_registry_changes_nothing(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
    cache: LocalCache,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    registry.reads_unavailable = True

    outcome = lifecycle.delete("shop@bank")

    assert outcome.kind is OutcomeKind.REMOTE_UNAVAILABLE
    assert cache.get_mapping("shop@bank") is not None


def test_delete_declined_confirmation_is_cancelled(
    lifecycle: MappingLifecycleController,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    prompts: list[str] = []

    def decline(prompt: str) -> bool:
        prompts.append(prompt)
        return False

    outcome = lifecycle.delete("shop@bank", DeleteOptions(confirm=decline))

    assert outcome.kind is OutcomeKind.CANCELLED
    assert prompts == ["Delete UPI id shop@bank from the registry?"]
    assert registry.submits("submit_remove") == []
    assert ledger.owner_of("shop@bank") == MERCHANT_A


def test_delete_with_force_never_asks(
    lifecycle: MappingLifecycleController,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)

    def refuse(_prompt: str) -> bool:
        raise AssertionError("confirmation must not be requested")

    outcome = lifecycle.delete("shop@bank", DeleteOptions(force=True, confirm=refuse))

    assert outcome.kind is OutcomeKind.DELETED
