from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects import postgresql


revision = "0001_pos_schema"
down_revision = None
branch_labels = None
depends_on = None

_JSON = postgresql.JSONB().with_variant(sa.JSON(), "sqlite")


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    return any(idx["name"] == index_name for idx in inspector.get_indexes(table_name))


def upgrade() -> None:
    bind = op.get_bind()
    inspector = inspect(bind)
    tables = set(inspector.get_table_names())

    if "customers" not in tables:
        op.create_table(
            "customers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("phone", sa.String(length=30), nullable=False),
            sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("loyalty_points >= 0", name="ck_customers_loyalty_points_non_negative"),
        )
        op.create_index("ix_customers_phone", "customers", ["phone"], unique=True)

    if "products" not in tables:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("selling_price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("selling_price >= 0", name="ck_products_selling_price_non_negative"),
        )

    if "classification_groups" not in tables:
        op.create_table(
            "classification_groups",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("allow_multiple", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        )
        op.create_index("ix_classification_groups_product_id", "classification_groups", ["product_id"])

    if "classification_options" not in tables:
        op.create_table(
            "classification_options",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "group_id",
                sa.Integer(),
                sa.ForeignKey("classification_groups.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("extra_price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.CheckConstraint("extra_price >= 0", name="ck_classification_options_extra_price_non_negative"),
        )
        op.create_index("ix_classification_options_group_id", "classification_options", ["group_id"])

    if "orders" not in tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_number", sa.String(length=32), nullable=False, unique=True),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
            sa.Column("customer_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("customer_phone", sa.String(length=30), nullable=True),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("payment_method", sa.String(length=20), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("discount_code", sa.String(length=32), nullable=True),
            sa.Column("discount_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("loyalty_points_used", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("loyalty_points_earned", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("transfer_content", sa.String(length=64), nullable=True),
            sa.Column("income_receipt_code", sa.String(length=32), nullable=True),
            sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("payment_payload", _JSON, nullable=True),
            sa.Column("payment_transaction_id", sa.String(length=128), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_non_negative"),
            sa.CheckConstraint("loyalty_points_used >= 0", name="ck_orders_points_used_non_negative"),
            sa.CheckConstraint("discount_amount >= 0", name="ck_orders_discount_non_negative"),
        )

    inspector = inspect(bind)
    if not _has_index(inspector, "orders", "ix_orders_status"):
        op.create_index("ix_orders_status", "orders", ["status"])
    if not _has_index(inspector, "orders", "ix_orders_created_by"):
        op.create_index("ix_orders_created_by", "orders", ["created_by"])
    if not _has_index(inspector, "orders", "orders_transfer_lookup_idx"):
        op.create_index("orders_transfer_lookup_idx", "orders", ["payment_method", "status", "created_at"])
    if not _has_index(inspector, "orders", "orders_income_receipt_code_uidx"):
        op.create_index(
            "orders_income_receipt_code_uidx",
            "orders",
            ["income_receipt_code"],
            unique=True,
            postgresql_where=sa.text("income_receipt_code IS NOT NULL"),
            sqlite_where=sa.text("income_receipt_code IS NOT NULL"),
        )
    if not _has_index(inspector, "orders", "orders_payment_transaction_id_uidx"):
        op.create_index(
            "orders_payment_transaction_id_uidx",
            "orders",
            ["payment_transaction_id"],
            unique=True,
            postgresql_where=sa.text("payment_transaction_id IS NOT NULL"),
            sqlite_where=sa.text("payment_transaction_id IS NOT NULL"),
        )

    if "order_items" not in tables:
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_id", sa.Integer(), nullable=True),
            sa.Column("product_name", sa.String(length=255), nullable=False),
            sa.Column("qty", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit_price", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("subtotal", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("classification_labels", _JSON, nullable=False),
            sa.Column("note", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.CheckConstraint("qty > 0", name="ck_order_items_qty_positive"),
            sa.CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"])

    if "user_roles" not in tables:
        op.create_table(
            "user_roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="no_role"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        )
        op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"], unique=True)

    if "receipt_sequences" not in tables:
        op.create_table(
            "receipt_sequences",
            sa.Column("name", sa.String(length=40), primary_key=True),
            sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
        )
        op.execute("INSERT INTO receipt_sequences (name, value) VALUES ('income_receipt', 0)")


def downgrade() -> None:
    op.drop_table("receipt_sequences")
    op.drop_table("user_roles")
    op.drop_index("ix_order_items_order_id", table_name="order_items")
    op.drop_table("order_items")
    op.drop_index("orders_payment_transaction_id_uidx", table_name="orders")
    op.drop_index("orders_income_receipt_code_uidx", table_name="orders")
    op.drop_index("orders_transfer_lookup_idx", table_name="orders")
    op.drop_index("ix_orders_created_by", table_name="orders")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_table("orders")
    op.drop_table("classification_options")
    op.drop_table("classification_groups")
    op.drop_table("products")
    op.drop_index("ix_customers_phone", table_name="customers")
    op.drop_table("customers")
