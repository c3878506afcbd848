"""Write the cached mappings of one owner, with their escrow wallets, to a file.

JSON keeps the nested structure; CSV flattens it to one row per mapping. Key
material is only written when explicitly asked for.
"""

from __future__ import annotations

import csv
from datetime import datetime  # noqa: TC003
from enum import StrEnum
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel

from upilink.domain.outcomes import utcnow

if TYPE_CHECKING:
    from upilink.domain.cache import LocalCache
    from upilink.domain.model import Address, EscrowWallet
    from upilink.domain.outcomes import Clock

log = getLogger(__name__)

CSV_COLUMNS = (
    "upi_id",
    "owner",
    "status",
    "created_at",
    "escrow_address",
    "wallet_address",
    "wallet_linked",
)


class ExportFormat(StrEnum):
    JSON = "json"
    CSV = "csv"


class ExportedWallet(BaseModel):
    address: str
    created_at: datetime
    linked: bool
    key_material: str | None = None


class ExportedMapping(BaseModel):
    upi_id: str
    owner: str
    status: str
    created_at: datetime
    escrow_address: str | None = None
    wallet: ExportedWallet | None = None


class CacheExport(BaseModel):
    exported_at: datetime
    owner: str
    includes_key_material: bool = False
    mappings: list[ExportedMapping] = []


def build_export(
    cache: LocalCache,
    owner: Address,
    *,
    include_key_material: bool = False,
    clock: Clock = utcnow,
) -> CacheExport:
    mappings = [
        ExportedMapping(
            upi_id=record.upi_id,
            owner=record.owner_identity,
            status=str(record.status),
            created_at=record.created_at,
            escrow_address=record.escrow_address,
            wallet=_exported_wallet(cache.get_wallet(record.upi_id), include_key_material),
        )
        for record in cache.mappings_of(owner)
    ]
    return CacheExport(
        exported_at=clock(),
        owner=owner,
        includes_key_material=include_key_material,
        mappings=mappings,
    )


def _exported_wallet(wallet: EscrowWallet | None, include_key_material: bool) -> ExportedWallet | None:
    if wallet is None:
        return None
    return ExportedWallet(
        address=wallet.address,
        created_at=wallet.created_at,
        linked=wallet.is_linked,
        key_material=wallet.key_material if include_key_material else None,
    )


def default_export_path(export_format: ExportFormat, today: datetime) -> Path:
    return Path(f"upilink-export-{today:%Y-%m-%d}.{export_format}")


def write_export(export: CacheExport, path: Path, export_format: ExportFormat) -> Path:
    if export.includes_key_material:
        log.warning("Export to %s contains escrow key material; keep the file private", path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if export_format is ExportFormat.JSON:
        path.write_text(export.model_dump_json(indent=2), encoding="utf-8")
    else:
        _write_csv(export, path)
    log.info("Exported %d mappings of %s to %s", len(export.mappings), export.owner, path)
    return path


def _write_csv(export: CacheExport, path: Path) -> None:
    columns = [*CSV_COLUMNS, "key_material"] if export.includes_key_material else list(CSV_COLUMNS)
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=columns)
        writer.writeheader()
        for mapping in export.mappings:
            wallet = mapping.wallet
            row: dict[str, str] = {
                "upi_id": mapping.upi_id,
                "owner": mapping.owner,
                "status": mapping.status,
                "created_at": mapping.created_at.isoformat(),
                "escrow_address": mapping.escrow_address or "",
                "wallet_address": wallet.address if wallet else "",
                "wallet_linked": str(wallet.linked).lower() if wallet else "",
            }
            if export.includes_key_material:
                row["key_material"] = (wallet.key_material or "") if wallet else ""
            writer.writerow(row)
