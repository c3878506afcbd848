"""SQLAlchemy table metadata for the local mapping cache."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Final

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    Enum,
    Index,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
)

from upilink.domain.model import MappingStatus

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UPI_ID_LENGTH: Final[int] = 321
ADDRESS_LENGTH: Final[int] = 66


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

mapping_record_table = Table(
    "mapping_record",
    metadata,
    Column("upi_id", String(UPI_ID_LENGTH), primary_key=True),
    Column("owner_identity", String(ADDRESS_LENGTH), nullable=False),
    Column("escrow_address", String(ADDRESS_LENGTH), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column(
        "status",
        Enum(
            MappingStatus,
            native_enum=False,
            length=32,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=MappingStatus.ACTIVE,
    ),
    Index("ix_mapping_record_owner_identity", "owner_identity"),
)

# key material lives apart from mapping records and never leaves this table
escrow_wallet_table = Table(
    "escrow_wallet",
    metadata,
    Column("upi_id", String(UPI_ID_LENGTH), primary_key=True),
    Column("address", String(ADDRESS_LENGTH), nullable=False, unique=True),
    Column("key_material", Text, nullable=False),
    Column("linked_upi_id", String(UPI_ID_LENGTH), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
)


def create_all_tables(engine: Engine) -> None:
    """Create database tables without running migrations."""

    log.info("Creating all tables")
    metadata.create_all(engine)
