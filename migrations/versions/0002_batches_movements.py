"""import batches and movements

Revision ID: 0002_batches_movements
Revises: 0001_stock_ledger_core
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_batches_movements"
down_revision = "0001_stock_ledger_core"
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
        "import_batches",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("vendor", sa.String(length=50), nullable=True),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("totals", sa.JSON(), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_import_batches_kind", "import_batches", ["kind"])
    op.create_index("ix_import_batches_created_at", "import_batches", ["created_at"])

    op.create_table(
        "movements",
        sa.Column("id", GUID(), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=10), nullable=False),
        sa.Column("item_serial", sa.String(length=32), nullable=False),
        sa.Column("box_id", GUID(), nullable=False),
        sa.Column("batch_id", GUID(), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["box_id"], ["boxes.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["import_batches.id"]),
    )
    op.create_index("ix_movements_item_serial", "movements", ["item_serial"])
    op.create_index("ix_movements_box_id", "movements", ["box_id"])
    op.create_index("ix_movements_batch_id", "movements", ["batch_id"])


def downgrade() -> None:
    op.drop_index("ix_movements_batch_id", table_name="movements")
    op.drop_index("ix_movements_box_id", table_name="movements")
    op.drop_index("ix_movements_item_serial", table_name="movements")
    op.drop_table("movements")
    op.drop_index("ix_import_batches_created_at", table_name="import_batches")
    op.drop_index("ix_import_batches_kind", table_name="import_batches")
    op.drop_table("import_batches")
