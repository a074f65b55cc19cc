"""stock ledger core: devices, boxes, items

Revision ID: 0001_stock_ledger_core
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_stock_ledger_core"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def upgrade() -> None:
    op.create_table(
        "devices",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("canonical_name", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("units_per_serial", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_devices_canonical_name", "devices", ["canonical_name"], unique=True)

    op.create_table(
        "boxes",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("device_id", GUID(), nullable=False),
        sa.Column("box_code", sa.String(length=100), nullable=False),
        sa.Column("master_box_no", sa.String(length=100), nullable=True),
        sa.Column("location", sa.String(length=50), nullable=False, server_default="00"),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="IN"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"]),
        sa.UniqueConstraint("device_id", "box_code", name="uq_boxes_device_box_code"),
    )
    op.create_index("ix_boxes_device_id", "boxes", ["device_id"])
    op.create_index("ix_boxes_status_location", "boxes", ["status", "location"])

    op.create_table(
        "items",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("serial", sa.String(length=32), nullable=False),
        sa.Column("device_id", GUID(), nullable=False),
        sa.Column("box_id", GUID(), nullable=False),
        sa.Column("status", sa.String(length=10), nullable=False, server_default="IN"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["devices.id"]),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.UniqueConstraint("serial", name="uq_items_serial"),
    )
    op.create_index("ix_items_device_id", "items", ["device_id"])
    op.create_index("ix_items_box_id", "items", ["box_id"])
    op.create_index("ix_items_box_status", "items", ["box_id", "status"])


def downgrade() -> None:
    op.drop_index("ix_items_box_status", table_name="items")
    op.drop_index("ix_items_box_id", table_name="items")
    op.drop_index("ix_items_device_id", table_name="items")
    op.drop_table("items")
    op.drop_index("ix_boxes_status_location", table_name="boxes")
    op.drop_index("ix_boxes_device_id", table_name="boxes")
    op.drop_table("boxes")
    op.drop_index("ix_devices_canonical_name", table_name="devices")
    op.drop_table("devices")
