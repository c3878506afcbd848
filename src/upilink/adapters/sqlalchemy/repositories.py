"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, insert, select, update

from upilink.adapters.sqlalchemy.mappings import escrow_wallet_table, mapping_record_table
from upilink.domain.model import EscrowWallet, MappingRecord

if TYPE_CHECKING:
    from sqlalchemy import Row, Table
    from sqlalchemy.orm import Session


class _KeyedTableRepository:
    """Shared upsert/remove helpers for tables keyed by ``upi_id``."""

    table: Table

    def __init__(self, session: Session) -> None:
        self.session = session

    def _fetch(self, key: str) -> Row[Any] | None:
        stmt = select(self.table).where(self.table.c.upi_id == key)
        return self.session.execute(stmt).first()

    def _upsert(self, key: str, values: dict[str, object]) -> None:
        if self._fetch(key) is None:
            self.session.execute(insert(self.table).values(**values))
            return
        stmt = update(self.table).where(self.table.c.upi_id == key).values(**values)
        self.session.execute(stmt)

    def remove(self, key: str) -> None:
        self.session.execute(delete(self.table).where(self.table.c.upi_id == key))


class SqlAlchemyMappingRepository(_KeyedTableRepository):
    table = mapping_record_table

    def get(self, key: str) -> MappingRecord | None:
        row = self._fetch(key)
        return _to_mapping(row) if row is not None else None

    def save(self, entity: MappingRecord) -> None:
        self._upsert(
            entity.upi_id,
            {
                "upi_id": entity.upi_id,
                "owner_identity": entity.owner_identity,
                "escrow_address": entity.escrow_address,
                "created_at": entity.created_at,
                "status": entity.status,
            },
        )

    def list_by_owner(self, owner: str) -> list[MappingRecord]:
        stmt = (
            select(self.table)
            .where(self.table.c.owner_identity == owner)
            .order_by(self.table.c.upi_id)
        )
        return [_to_mapping(row) for row in self.session.execute(stmt)]


class SqlAlchemyEscrowWalletRepository(_KeyedTableRepository):
    table = escrow_wallet_table

    def get(self, key: str) -> EscrowWallet | None:
        row = self._fetch(key)
        return _to_wallet(row) if row is not None else None

    def get_by_address(self, address: str) -> EscrowWallet | None:
        stmt = select(self.table).where(self.table.c.address == address)
        row = self.session.execute(stmt).first()
        return _to_wallet(row) if row is not None else None

    def save(self, entity: EscrowWallet) -> None:
        self._upsert(
            entity.upi_id,
            {
                "upi_id": entity.upi_id,
                "address": entity.address,
                "key_material": entity.key_material,
                "linked_upi_id": entity.linked_upi_id,
                "created_at": entity.created_at,
            },
        )

    def list_all(self) -> list[EscrowWallet]:
        stmt = select(self.table).order_by(self.table.c.upi_id)
        return [_to_wallet(row) for row in self.session.execute(stmt)]


def _to_mapping(row: Row[Any]) -> MappingRecord:
    return MappingRecord(
        upi_id=row.upi_id,
        owner_identity=row.owner_identity,
        escrow_address=row.escrow_address,
        created_at=row.created_at,
        status=row.status,
    )


def _to_wallet(row: Row[Any]) -> EscrowWallet:
    return EscrowWallet(
        upi_id=row.upi_id,
        address=row.address,
        key_material=row.key_material,
        linked_upi_id=row.linked_upi_id,
        created_at=row.created_at,
    )


if TYPE_CHECKING:
    from typing import cast

    from upilink.domain.ports.persistence import EscrowWalletRepository, MappingRepository

    _session_stub = cast("Session", object())
    _mapping_repo: MappingRepository = SqlAlchemyMappingRepository(_session_stub)
    _wallet_repo: EscrowWalletRepository = SqlAlchemyEscrowWalletRepository(_session_stub)
