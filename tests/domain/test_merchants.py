from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from upilink.domain.model import OutcomeKind
from upilink.domain.outcomes import MerchantOptions
from upilink.domain.ports import RegistryUnavailableError
from tests.helpers.registry import MERCHANT_A, MERCHANT_B, rejected, timed_out

if TYPE_CHECKING:
    from upilink.adapters.memory import InMemoryLedger
    from upilink.domain.escrow import EscrowLinkController
    from upilink.domain.lifecycle import MappingLifecycleController
    from upilink.domain.merchants import MerchantAccountController
    from tests.helpers.registry import ScriptedRegistry

NOW = datetime(2024, 5, 1, 12, tzinfo=UTC)
W1 = "0x" + "1".rjust(64, "0")


def test_register_merchant_submits_details(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
) -> None:
    outcome = merchants.register("  Alice Stores ", "alice@example.com")

    assert outcome.kind is OutcomeKind.MERCHANT_REGISTERED
    assert outcome.succeeded
    assert outcome.address == MERCHANT_A
    assert outcome.references == ("mock:merchant:000001",)
    assert outcome.profile is not None
    assert outcome.profile.business_name == "Alice Stores"
    assert outcome.profile.registered_at == NOW
    assert registry.submits() == [
        ("submit_register_merchant", "Alice Stores", "alice@example.com")
    ]
    assert merchants.profile() == ledger.merchant(MERCHANT_A)


def test_registered_merchant_is_not_registered_twice(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
) -> None:
    merchants.register("Alice Stores", "alice@example.com")

    outcome = merchants.register("Renamed", "other@example.com")

    assert outcome.kind is OutcomeKind.ALREADY_REGISTERED
    assert outcome.succeeded
    assert outcome.profile is not None
    assert outcome.profile.business_name == "Alice Stores"
    assert len(registry.submits()) == 1


@pytest.mark.parametrize(
    ("business_name", "contact_info", "problem"),
    [
        ("A", "alice@example.com", "business name"),
        ("x" * 101, "alice@example.com", "business name"),
        ("Alice Stores", "a@b", "contact info"),
        ("Alice Stores", "   ", "contact info"),
    ],
)
def test_invalid_details_are_refused_locally(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
    business_name: str,
    contact_info: str,
    problem: str,
) -> None:
    outcome = merchants.register(business_name, contact_info)

    assert outcome.kind is OutcomeKind.INVALID_MERCHANT_DETAILS
    assert outcome.detail is not None
    assert outcome.detail.startswith(problem)
    assert registry.calls == []


def test_declined_confirmation_is_cancelled(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
) -> None:
    prompts: list[str] = []

    def decline(prompt: str) -> bool:
        prompts.append(prompt)
        return False

    outcome = merchants.register(
        "Alice Stores", "alice@example.com", MerchantOptions(confirm=decline)
    )

    assert outcome.kind is OutcomeKind.CANCELLED
    assert prompts == [f"Register {MERCHANT_A} as merchant 'Alice Stores'?"]
    assert registry.submits() == []


@pytest.mark.parametrize(
    ("answer", "kind"),
    [
        (rejected("E_MERCHANT_EXISTS"), OutcomeKind.REMOTE_REJECTED),
        (timed_out(), OutcomeKind.REMOTE_UNAVAILABLE),
        (RegistryUnavailableError("node down"), OutcomeKind.REMOTE_UNAVAILABLE),
    ],
    ids=["rejected", "timed-out", "unreachable"],
)
def test_failed_submit_is_reported(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
    ledger: InMemoryLedger,
    answer: object,
    kind: OutcomeKind,
) -> None:
    registry.script("submit_register_merchant", answer)  # type: ignore[arg-type]

    outcome = merchants.register("Alice Stores", "alice@example.com")

    assert outcome.kind is kind
    assert not outcome.succeeded
    assert outcome.profile is None
    assert ledger.merchant(MERCHANT_A) is None


def test_unreachable_registry_on_lookup(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
) -> None:
    registry.reads_unavailable = True

    outcome = merchants.register("Alice Stores", "alice@example.com")

    assert outcome.kind is OutcomeKind.REMOTE_UNAVAILABLE
    assert registry.submits() == []


def test_stats_count_merchants_and_mappings(
    merchants: MerchantAccountController,
    lifecycle: MappingLifecycleController,
    ledger: InMemoryLedger,
) -> None:
    merchants.register("Alice Stores", "alice@example.com")
    ledger.register_merchant(MERCHANT_B, "Bob Traders", "bob@example.com")
    lifecycle.register("shop@bank", MERCHANT_A)

    stats = merchants.stats()

    assert (stats.total_merchants, stats.total_mappings) == (2, 1)


def test_escrow_balance_reads_linked_wallet(
    merchants: MerchantAccountController,
    lifecycle: MappingLifecycleController,
    escrow: EscrowLinkController,
    ledger: InMemoryLedger,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    escrow.generate("shop@bank")
    ledger.fund(W1, 250_000_000)

    balance = merchants.escrow_balance("shop@bank")

    assert balance is not None
    assert balance.address == W1
    assert balance.octas == 250_000_000
    assert balance.apt == Decimal("2.5")


def test_escrow_balance_without_wallet_is_none(
    merchants: MerchantAccountController,
    registry: ScriptedRegistry,
) -> None:
    assert merchants.escrow_balance("shop@bank") is None
    assert registry.calls == []


def test_escrow_balance_read_failure_propagates(
    merchants: MerchantAccountController,
    lifecycle: MappingLifecycleController,
    escrow: EscrowLinkController,
    registry: ScriptedRegistry,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    escrow.generate("shop@bank")
    registry.reads_unavailable = True

    with pytest.raises(RegistryUnavailableError):
        merchants.escrow_balance("shop@bank")


def test_escrow_history_lists_wallet_transfers(
    merchants: MerchantAccountController,
    lifecycle: MappingLifecycleController,
    escrow: EscrowLinkController,
    ledger: InMemoryLedger,
    registry: ScriptedRegistry,
) -> None:
    lifecycle.register("shop@bank", MERCHANT_A)
    escrow.generate("shop@bank")
    ledger.fund(W1, 100, sender=MERCHANT_B)
    ledger.fund(W1, 300, sender=MERCHANT_B)

    history = merchants.escrow_history("shop@bank", limit=1)

    assert history is not None
    assert [tx.amount_octas for tx in history] == [300]
    assert ("account_transactions", W1) in registry.calls
    assert merchants.escrow_history("store@bank") is None
