# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal
from pathlib import Path
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from upilink.adapters.keys import InvalidPrivateKeyError
from upilink.app import build_services, sync_own_mappings
from upilink.config import ConfigurationError, configure_logging
from upilink.domain.model import OCTAS_PER_APT, OutcomeKind
from upilink.domain.outcomes import (
    DeleteOptions,
    GenerateEscrowOptions,
    MerchantOptions,
    RegisterOptions,
    UpdateOptions,
)
from upilink.domain.ports import RegistryError
from upilink.domain.reconciliation import ReconciliationError
from upilink.ui.export import ExportFormat, build_export, default_export_path, write_export

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

    from upilink.app import Services
    from upilink.domain.model import MerchantProfile
    from upilink.domain.outcomes import Confirmation, LifecycleOutcome, MerchantOutcome
    from upilink.domain.reconciliation import ReconciliationReport

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="upilink", description="Manage UPI id mappings on the on-chain registry"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_confirm_flags(command: argparse.ArgumentParser) -> None:
        command.add_argument(
            "-f",
            "--force",
            action="store_true",
            help="Do not ask for confirmation before writing to the registry",
        )
        command.add_argument(
            "-y",
            "--yes",
            action="store_true",
            help="Answer yes to every confirmation prompt",
        )

    register = subparsers.add_parser("register", help="Register a UPI id")
    register.add_argument("upi_id", help="UPI id, e.g. shop@okbank")
    register.add_argument(
        "--owner",
        type=str,
        help="Expected owner address (defaults to the signing identity)",
    )
    add_confirm_flags(register)

    update = subparsers.add_parser("update", help="Replace a registered UPI id")
    update.add_argument("old_upi_id")
    update.add_argument("new_upi_id")
    add_confirm_flags(update)

    delete = subparsers.add_parser("delete", help="Remove a UPI id from the registry")
    delete.add_argument("upi_id")
    add_confirm_flags(delete)

    generate = subparsers.add_parser("generate", help="Generate and link an escrow wallet")
    generate.add_argument("upi_id")
    generate.add_argument(
        "-r",
        "--regenerate",
        action="store_true",
        help="Replace an existing wallet (its key material is discarded)",
    )
    add_confirm_flags(generate)

    subparsers.add_parser("sync", help="Reconcile the local cache with the registry")

    listing = subparsers.add_parser("list", help="List cached mappings of the signing identity")
    listing.add_argument(
        "-s",
        "--sync",
        action="store_true",
        help="Reconcile with the registry before listing",
    )

    status = subparsers.add_parser("status", help="Show local and remote state of a UPI id")
    status.add_argument("upi_id")

    merchant = subparsers.add_parser(
        "register-merchant", help="Register the signing identity as a merchant"
    )
    merchant.add_argument("business_name")
    merchant.add_argument("contact_info", help="Email or phone number")
    add_confirm_flags(merchant)

    subparsers.add_parser("merchant", help="Show the merchant profile of the signing identity")
    subparsers.add_parser("stats", help="Show registry totals")

    balance = subparsers.add_parser("balance", help="Show the escrow wallet balance of a UPI id")
    balance.add_argument("upi_id")

    history = subparsers.add_parser(
        "history", help="Show recent transactions of the escrow wallet of a UPI id"
    )
    history.add_argument("upi_id")
    history.add_argument(
        "-n", "--limit", type=int, default=10, help="Number of transactions (default: 10)"
    )

    export = subparsers.add_parser("export", help="Export cached mappings and escrow wallets")
    export.add_argument(
        "--format",
        choices=[str(export_format) for export_format in ExportFormat],
        default=str(ExportFormat.JSON),
    )
    export.add_argument("-o", "--output", type=Path, help="Target file")
    export.add_argument(
        "--include-keys",
        action="store_true",
        help="Write escrow key material into the export",
    )

    return parser.parse_args(list(argv))


def _prompt(message: str) -> bool:
    answer = input(f"{message} [y/N] ")
    return answer.strip().lower() in {"y", "yes"}


def _confirmation(args: argparse.Namespace, prompt: Callable[[str], bool]) -> Confirmation:
    if getattr(args, "yes", False):
        return lambda _message: True
    return prompt


def _print_outcome(outcome: LifecycleOutcome) -> None:
    print(f"{outcome.kind}: {outcome.upi_id}")
    if outcome.detail:
        print(f"  {outcome.detail}")
    for reference in outcome.references:
        print(f"  tx {reference}")
    if outcome.wallet_address:
        print(f"  escrow {outcome.wallet_address}")
    if not outcome.succeeded:
        print(f"  local state changed: {'yes' if outcome.local_state_changed else 'no'}")


def _print_report(report: ReconciliationReport) -> None:
    print(f"synced {len(report.mappings)} mapping(s) for {report.owner}")
    for label, values in (
        ("added", report.added),
        ("removed", report.removed),
        ("updated", report.updated),
        ("linked", report.linked),
        ("unlinked", report.unlinked),
    ):
        if values:
            print(f"  {label}: {', '.join(values)}")
    if not report.drifted:
        print("  cache already up to date")


def _list(services: Services, *, sync: bool) -> None:
    if sync:
        sync_own_mappings(services)
    records = services.cache.mappings_of(services.identity)
    if not records:
        print("no cached mappings")
        return
    for record in records:
        escrow = record.escrow_address or "-"
        print(f"{record.upi_id}\t{record.status}\t{escrow}\t{record.created_at.isoformat()}")


def _status(services: Services, upi_id: str) -> None:
    print(f"{upi_id}: {services.lifecycle.state_of(upi_id)}")
    record = services.cache.get_mapping(upi_id)
    if record is not None:
        print(f"  cached owner {record.owner_identity}")
        print(f"  escrow {record.escrow_address or '-'}")
    wallet = services.cache.get_wallet(upi_id)
    if wallet is not None:
        print(f"  wallet {wallet.address} ({'linked' if wallet.is_linked else 'not linked'})")
    check = services.verifier.check(upi_id, services.identity)
    print(f"  registry {check.verdict}" + (f" ({check.owner})" if check.owner else ""))


def _print_merchant(outcome: MerchantOutcome) -> None:
    print(f"{outcome.kind}: {outcome.address}")
    if outcome.detail:
        print(f"  {outcome.detail}")
    for reference in outcome.references:
        print(f"  tx {reference}")
    if outcome.profile is not None:
        _print_profile(outcome.profile)


def _print_profile(profile: MerchantProfile) -> None:
    print(f"  business {profile.business_name}")
    print(f"  contact {profile.contact_info}")
    if profile.registered_at is not None:
        print(f"  registered {profile.registered_at.isoformat()}")
    print(f"  active {'yes' if profile.is_active else 'no'}")
    print(f"  kyc verified {'yes' if profile.kyc_verified else 'no'}")


def _merchant(services: Services) -> int:
    profile = services.merchants.profile()
    if profile is None:
        print(f"{services.identity}: not a registered merchant")
        return EXIT_FAILED
    print(f"{profile.address}: registered merchant")
    _print_profile(profile)
    return EXIT_OK


def _balance(services: Services, upi_id: str) -> int:
    balance = services.merchants.escrow_balance(upi_id)
    if balance is None:
        print(f"{upi_id}: no escrow wallet")
        return EXIT_FAILED
    print(f"{upi_id}: {balance.apt} APT ({balance.octas} octas) in {balance.address}")
    return EXIT_OK


def _history(services: Services, upi_id: str, limit: int) -> int:
    transactions = services.merchants.escrow_history(upi_id, limit)
    if transactions is None:
        print(f"{upi_id}: no escrow wallet")
        return EXIT_FAILED
    if not transactions:
        print(f"{upi_id}: no transactions")
        return EXIT_OK
    for tx in transactions:
        amount = f"{Decimal(tx.amount_octas) / OCTAS_PER_APT} APT" if tx.amount_octas else "-"
        status = "ok" if tx.success else "failed"
        function = tx.function or "-"
        print(f"{tx.timestamp.isoformat()}\t{status}\t{amount}\t{function}\t{tx.reference}")
    succeeded = [tx for tx in transactions if tx.success]
    volume = sum(tx.amount_octas or 0 for tx in succeeded)
    print(
        f"{len(transactions)} transaction(s), {len(transactions) - len(succeeded)} failed, "
        f"{Decimal(volume) / OCTAS_PER_APT} APT transferred"
    )
    return EXIT_OK


def _export(services: Services, args: argparse.Namespace) -> int:
    export_format = ExportFormat(args.format)
    export = build_export(
        services.cache, services.identity, include_key_material=args.include_keys
    )
    if not export.mappings:
        print("no cached mappings to export")
        return EXIT_FAILED
    path = args.output or default_export_path(export_format, export.exported_at)
    write_export(export, path, export_format)
    print(f"exported {len(export.mappings)} mapping(s) to {path}")
    return EXIT_OK


def _run_command(
    args: argparse.Namespace,
    services: Services,
    prompt: Callable[[str], bool],
) -> int:
    force = bool(getattr(args, "force", False))
    confirm = _confirmation(args, prompt)
    outcome: LifecycleOutcome
    if args.command == "register":
        outcome = services.lifecycle.register(
            args.upi_id,
            args.owner or services.identity,
            RegisterOptions(force=force, confirm=confirm),
        )
    elif args.command == "update":
        outcome = services.lifecycle.update(
            args.old_upi_id,
            args.new_upi_id,
            UpdateOptions(force=force, confirm=confirm),
        )
    elif args.command == "delete":
        outcome = services.lifecycle.delete(
            args.upi_id, DeleteOptions(force=force, confirm=confirm)
        )
    elif args.command == "generate":
        outcome = services.escrow.generate(
            args.upi_id,
            GenerateEscrowOptions(regenerate=args.regenerate, force=force, confirm=confirm),
        )
    elif args.command == "sync":
        _print_report(sync_own_mappings(services))
        return EXIT_OK
    elif args.command == "list":
        _list(services, sync=args.sync)
        return EXIT_OK
    elif args.command == "status":
        _status(services, args.upi_id)
        return EXIT_OK
    elif args.command == "register-merchant":
        merchant = services.merchants.register(
            args.business_name,
            args.contact_info,
            MerchantOptions(force=force, confirm=confirm),
        )
        _print_merchant(merchant)
        if merchant.kind is OutcomeKind.INVALID_MERCHANT_DETAILS:
            return EXIT_USAGE
        return EXIT_OK if merchant.succeeded else EXIT_FAILED
    elif args.command == "merchant":
        return _merchant(services)
    elif args.command == "stats":
        stats = services.merchants.stats()
        print(f"merchants {stats.total_merchants}")
        print(f"mappings {stats.total_mappings}")
        return EXIT_OK
    elif args.command == "balance":
        return _balance(services, args.upi_id)
    elif args.command == "history":
        return _history(services, args.upi_id, args.limit)
    elif args.command == "export":
        return _export(services, args)
    else:
        raise ValueError(f"Unsupported command: {args.command}")

    _print_outcome(outcome)
    if outcome.kind is OutcomeKind.INVALID_IDENTIFIER_FORMAT:
        return EXIT_USAGE
    return EXIT_OK if outcome.succeeded else EXIT_FAILED


def main(
    argv: Sequence[str] | None = None,
    *,
    prompt: Callable[[str], bool] = _prompt,
) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        services = build_services()
    except (ConfigurationError, InvalidPrivateKeyError):
        log.exception("Configuration error")
        sys.exit(EXIT_USAGE)

    try:
        code = _run_command(parsed_args, services, prompt)
    except (RegistryError, ReconciliationError) as exc:
        log.error("Registry unavailable: %s", exc)  # noqa: TRY400
        sys.exit(EXIT_FAILED)
    except Exception:
        log.exception("Fatal error")
        sys.exit(EXIT_FAILED)

    if code != EXIT_OK:
        sys.exit(code)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
