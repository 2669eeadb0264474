"""create stock ledger schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_TABLES = (
    "skus",
    "import_batches",
    "purchases",
    "current_stock",
    "stock_movements",
    "orders",
    "order_lines",
)


def _id():
    return sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()"))


def _tenant():
    return sa.Column(
        "tenant_id", UUID(as_uuid=True), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def _updated_at():
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        _created_at(),
    )

    op.create_table(
        "skus",
        _id(),
        _tenant(),
        sa.Column("sku_code", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default=""),
        sa.Column("cost_price", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("damaged_stock", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
        _updated_at(),
    )
    op.create_unique_constraint("uq_skus_tenant_code", "skus", ["tenant_id", "sku_code"])

    op.create_table(
        "import_batches",
        _id(),
        _tenant(),
        sa.Column("batch_type", sa.String(20), nullable=False),
        sa.Column("batch_name", sa.String(255), nullable=False),
        sa.Column("record_count", sa.Integer, nullable=False, server_default="0"),
        _created_at(),
    )

    # purchase lots
    op.create_table(
        "purchases",
        _id(),
        _tenant(),
        sa.Column("sku_id", UUID(as_uuid=True), sa.ForeignKey("skus.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("purchase_date", sa.Date, nullable=False),
        sa.Column("cost_per_unit", sa.Numeric(18, 4), nullable=False),
        sa.Column("quantity_purchased", sa.Integer, nullable=False),
        sa.Column("quantity_remaining", sa.Integer, nullable=False),
        sa.Column("supplier_name", sa.String(255), nullable=True),
        sa.Column(
            "import_batch_id", UUID(as_uuid=True),
            sa.ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        _created_at(),
        sa.CheckConstraint(
            "quantity_remaining >= 0 AND quantity_remaining <= quantity_purchased",
            name="ck_purchases_remaining_bounds",
        ),
    )
    op.create_index("ix_purchases_fifo", "purchases", ["tenant_id", "sku_id", "purchase_date", "created_at"])
    op.create_index("ix_purchases_import_batch_id", "purchases", ["import_batch_id"])

    op.create_table(
        "current_stock",
        _id(),
        _tenant(),
        sa.Column("sku_id", UUID(as_uuid=True), sa.ForeignKey("skus.id", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity_available", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        _created_at(),
        _updated_at(),
    )
    op.create_unique_constraint("uq_current_stock_tenant_sku", "current_stock", ["tenant_id", "sku_id"])

    op.create_table(
        "stock_movements",
        _id(),
        _tenant(),
        sa.Column("sku_id", UUID(as_uuid=True), sa.ForeignKey("skus.id", ondelete="CASCADE"), nullable=False),
        sa.Column("movement_type", sa.String(30), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("reference_type", sa.String(30), nullable=True),
        sa.Column("reference_id", UUID(as_uuid=True), nullable=True),
        sa.Column("return_condition", sa.String(20), nullable=True),
        sa.Column("movement_date", sa.Date, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("ix_stock_movements_tenant_sku", "stock_movements", ["tenant_id", "sku_id"])
    op.create_index("ix_stock_movements_reference_id", "stock_movements", ["reference_id"])

    op.create_table(
        "orders",
        _id(),
        _tenant(),
        sa.Column("order_number", sa.String(100), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        sa.Column("net_revenue", sa.Numeric(18, 4), nullable=False, server_default="0"),
        sa.Column("total_cost", sa.Numeric(18, 4), nullable=True),
        sa.Column("profit_loss", sa.Numeric(18, 4), nullable=True),
        sa.Column("profit_margin_percent", sa.Numeric(18, 4), nullable=True),
        sa.Column(
            "import_batch_id", UUID(as_uuid=True),
            sa.ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True,
        ),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_orders_tenant_status", "orders", ["tenant_id", "status"])
    op.create_index("ix_orders_import_batch_id", "orders", ["import_batch_id"])

    op.create_table(
        "order_lines",
        _id(),
        _tenant(),
        sa.Column("order_id", UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sku_id", UUID(as_uuid=True), sa.ForeignKey("skus.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("unit_cost", sa.Numeric(18, 4), nullable=True),
        sa.Column("line_total_cost", sa.Numeric(18, 4), nullable=True),
        sa.Column("is_returned", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("return_date", sa.Date, nullable=True),
        _created_at(),
        sa.CheckConstraint("quantity > 0", name="ck_order_lines_quantity_positive"),
    )
    op.create_index("ix_order_lines_order_id", "order_lines", ["order_id"])

    # RLS
    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY {table}_tenant_policy ON {table} "
            "USING (tenant_id = nullif(trim(current_setting('app.tenant_id', true)), '')::uuid)"
        )


def downgrade() -> None:
    for table in reversed(TENANT_TABLES):
        op.execute(f"DROP POLICY IF EXISTS {table}_tenant_policy ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.drop_table("order_lines")
    op.drop_table("orders")
    op.drop_table("stock_movements")
    op.drop_table("current_stock")
    op.drop_table("purchases")
    op.drop_table("import_batches")
    op.drop_table("skus")
    op.drop_table("tenants")
