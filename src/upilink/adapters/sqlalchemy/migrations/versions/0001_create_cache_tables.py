"""create mapping cache tables

Revision ID: 0001_create_cache_tables
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from upilink.adapters.sqlalchemy.mappings import UTCDateTime

revision = "0001_create_cache_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "mapping_record",
        sa.Column("upi_id", sa.String(length=321), nullable=False),
        sa.Column("owner_identity", sa.String(length=66), nullable=False),
        sa.Column("escrow_address", sa.String(length=66), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.PrimaryKeyConstraint("upi_id", name=op.f("pk_mapping_record")),
    )
    op.create_index(
        "ix_mapping_record_owner_identity",
        "mapping_record",
        ["owner_identity"],
        unique=False,
    )
    op.create_table(
        "escrow_wallet",
        sa.Column("upi_id", sa.String(length=321), nullable=False),
        sa.Column("address", sa.String(length=66), nullable=False),
        sa.Column("key_material", sa.Text(), nullable=False),
        sa.Column("linked_upi_id", sa.String(length=321), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint("upi_id", name=op.f("pk_escrow_wallet")),
        sa.UniqueConstraint("address", name=op.f("uq_escrow_wallet_address")),
    )


def downgrade() -> None:
    op.drop_table("escrow_wallet")
    op.drop_index("ix_mapping_record_owner_identity", table_name="mapping_record")
    op.drop_table("mapping_record")
