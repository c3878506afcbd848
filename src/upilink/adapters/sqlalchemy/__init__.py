"""SQLAlchemy adapter package for the local mapping cache."""

from __future__ import annotations

from .mappings import (
    create_all_tables,
    escrow_wallet_table,
    mapping_record_table,
    metadata,
)
from .repositories import SqlAlchemyEscrowWalletRepository, SqlAlchemyMappingRepository
from .unit_of_work import (
    SqlAlchemyCacheUnitOfWork,
    StartupError,
    configured_engine,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyCacheUnitOfWork",
    "SqlAlchemyEscrowWalletRepository",
    "SqlAlchemyMappingRepository",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "escrow_wallet_table",
    "mapping_record_table",
    "metadata",
    "shutdown",
    "startup",
]
