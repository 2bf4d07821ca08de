"""create ledger index tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "shipments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shipment_hash", sa.String(length=132), nullable=False, comment="Ledger-derived shipment identifier"),
        sa.Column("batch_id", sa.String(length=128), nullable=False),
        sa.Column(
            "supplier_wallet",
            sa.String(length=42),
            nullable=False,
            comment="Lower-cased ledger account of the supplier",
        ),
        sa.Column("number_of_containers", sa.Integer(), nullable=False),
        sa.Column("quantity_per_container", sa.Integer(), nullable=False),
        sa.Column("total_quantity", sa.BigInteger(), nullable=False),
        sa.Column("tx_hash", sa.String(length=66), nullable=True),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("blockchain_timestamp", sa.BigInteger(), nullable=True, comment="Ledger timestamp in unix seconds"),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("status_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_transporter", sa.String(length=42), nullable=True),
        sa.Column("assigned_warehouse", sa.String(length=42), nullable=True),
        sa.Column("next_transporter", sa.String(length=42), nullable=True),
        sa.Column("assigned_retailer", sa.String(length=42), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("number_of_containers >= 1", name="ck_shipments_containers_positive"),
        sa.CheckConstraint("quantity_per_container >= 1", name="ck_shipments_quantity_positive"),
        sa.CheckConstraint(
            "total_quantity = number_of_containers * quantity_per_container",
            name="ck_shipments_total_quantity_product",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_shipments"),
        sa.UniqueConstraint("shipment_hash", name="uq_shipments_shipment_hash"),
    )
    op.create_index("ix_shipments_supplier_wallet_status", "shipments", ["supplier_wallet", "status"], unique=False)
    op.create_index("ix_shipments_status", "shipments", ["status"], unique=False)
    op.create_index("ix_shipments_block_number", "shipments", ["block_number"], unique=False)

    op.create_table(
        "containers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "container_id",
            sa.String(length=64),
            nullable=False,
            comment="Deterministic id derived from shipment hash and sequence index",
        ),
        sa.Column("shipment_hash", sa.String(length=132), nullable=False),
        sa.Column("sequence_index", sa.Integer(), nullable=False),
        sa.Column("qr_data", sa.String(length=64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("last_scanned_by_role", sa.String(length=32), nullable=True),
        sa.Column(
            "last_scanned_by",
            sa.String(length=128),
            nullable=True,
            comment="Identity (wallet) of the last accepted scanner",
        ),
        sa.Column("last_scanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_scan_location", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("sequence_index >= 1", name="ck_containers_sequence_positive"),
        sa.CheckConstraint("quantity >= 1", name="ck_containers_quantity_positive"),
        sa.ForeignKeyConstraint(
            ["shipment_hash"],
            ["shipments.shipment_hash"],
            name="fk_containers_shipment_hash_shipments",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_containers"),
        sa.UniqueConstraint("container_id", name="uq_containers_container_id"),
        sa.UniqueConstraint("shipment_hash", "sequence_index", name="uq_containers_shipment_sequence"),
    )
    op.create_index(
        "ix_containers_shipment_hash_status",
        "containers",
        ["shipment_hash", "status"],
        unique=False,
    )

    op.create_table(
        "indexer_checkpoints",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("stream_key", sa.String(length=100), nullable=False),
        sa.Column(
            "last_processed_position",
            sa.BigInteger(),
            nullable=False,
            comment="Last ledger block whose events are fully projected",
        ),
        sa.Column("chain_identity", sa.Integer(), nullable=False),
        sa.Column(
            "source_address",
            sa.String(length=42),
            nullable=False,
            comment="Lower-cased contract address being indexed",
        ),
        sa.Column("total_events_processed", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "last_processed_position >= 0",
            name="ck_indexer_checkpoints_position_non_negative",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_indexer_checkpoints"),
        sa.UniqueConstraint("stream_key", name="uq_indexer_checkpoints_stream_key"),
    )
    op.create_index("ix_indexer_checkpoints_updated_at", "indexer_checkpoints", ["updated_at"], unique=False)

    op.create_table(
        "scan_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "container_id",
            sa.String(length=128),
            nullable=False,
            comment="Normalized scanned identifier; may not match any container",
        ),
        sa.Column("shipment_hash", sa.String(length=132), nullable=True),
        sa.Column("actor_role", sa.String(length=32), nullable=False),
        sa.Column("actor_identity", sa.String(length=128), nullable=False),
        sa.Column("result", sa.String(length=16), nullable=False),
        sa.Column("rejection_code", sa.String(length=64), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("previous_status", sa.String(length=32), nullable=True),
        sa.Column("new_status", sa.String(length=32), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column(
            "metadata_json",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Client-supplied scan context",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_scan_logs"),
    )
    op.create_index("ix_scan_logs_container_id", "scan_logs", ["container_id"], unique=False)
    op.create_index(
        "ix_scan_logs_shipment_hash_created_at",
        "scan_logs",
        ["shipment_hash", "created_at"],
        unique=False,
    )
    op.create_index("ix_scan_logs_result", "scan_logs", ["result"], unique=False)
    op.create_index("ix_scan_logs_actor_identity", "scan_logs", ["actor_identity"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_scan_logs_actor_identity", table_name="scan_logs")
    op.drop_index("ix_scan_logs_result", table_name="scan_logs")
    op.drop_index("ix_scan_logs_shipment_hash_created_at", table_name="scan_logs")
    op.drop_index("ix_scan_logs_container_id", table_name="scan_logs")
    op.drop_table("scan_logs")

    op.drop_index("ix_indexer_checkpoints_updated_at", table_name="indexer_checkpoints")
    op.drop_table("indexer_checkpoints")

    op.drop_index("ix_containers_shipment_hash_status", table_name="containers")
    op.drop_table("containers")

    op.drop_index("ix_shipments_block_number", table_name="shipments")
    op.drop_index("ix_shipments_status", table_name="shipments")
    op.drop_index("ix_shipments_supplier_wallet_status", table_name="shipments")
    op.drop_table("shipments")
