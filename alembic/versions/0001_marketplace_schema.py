from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB


revision = "0001_marketplace_schema"
down_revision = None
branch_labels = None
depends_on = None

_JSON = JSONB().with_variant(sa.JSON(), "sqlite")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    existing = set(inspect(op.get_bind()).get_table_names())

    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="buyer"),
            sa.Column("phone", sa.String(length=30), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "categories" not in existing:
        op.create_table(
            "categories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=80), nullable=False, unique=True),
            sa.Column("slug", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            _created_at(),
        )
        op.create_index("ix_categories_slug", "categories", ["slug"], unique=True)

    if "products" not in existing:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("images", _JSON, nullable=False),
            sa.Column("location", sa.String(length=120), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            _updated_at(),
            sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        )
        op.create_index("ix_products_seller_id", "products", ["seller_id"])
        op.create_index("ix_products_category_id", "products", ["category_id"])

    if "cart_items" not in existing:
        op.create_table(
            "cart_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("added_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
        )
        op.create_index("ix_cart_items_user_id", "cart_items", ["user_id"])

    if "saved_items" not in existing:
        op.create_table(
            "saved_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("saved_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint("user_id", "product_id", name="uq_saved_items_user_product"),
        )
        op.create_index("ix_saved_items_user_id", "saved_items", ["user_id"])

    if "campaigns" not in existing:
        op.create_table(
            "campaigns",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("campaign_type", sa.String(length=30), nullable=False),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("banner_image", sa.String(length=500), nullable=True),
            _created_at(),
            _updated_at(),
        )
        op.create_index("ix_campaigns_seller_id", "campaigns", ["seller_id"])

    if "discount_codes" not in existing:
        op.create_table(
            "discount_codes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("campaign_id", sa.Integer(), sa.ForeignKey("campaigns.id"), nullable=True),
            sa.Column("code", sa.String(length=20), nullable=False),
            sa.Column("discount_type", sa.String(length=20), nullable=False),
            sa.Column("value", sa.Numeric(12, 2), nullable=False),
            sa.Column("min_purchase_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("max_discount_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("buy_quantity", sa.Integer(), nullable=True),
            sa.Column("get_quantity", sa.Integer(), nullable=True),
            sa.Column("usage_limit", sa.Integer(), nullable=True),
            sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("eligible_product_ids", _JSON, nullable=False),
            sa.Column("eligible_category_ids", _JSON, nullable=False),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            _updated_at(),
            sa.UniqueConstraint("seller_id", "code", name="uq_discount_codes_seller_code"),
            sa.CheckConstraint("usage_count >= 0", name="ck_discount_codes_usage_non_negative"),
            sa.CheckConstraint(
                "usage_limit IS NULL OR usage_count <= usage_limit",
                name="ck_discount_codes_usage_within_limit",
            ),
        )
        op.create_index("ix_discount_codes_seller_id", "discount_codes", ["seller_id"])
        op.create_index("ix_discount_codes_campaign_id", "discount_codes", ["campaign_id"])

    if "orders" not in existing:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("subtotal_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("discount_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("refunded_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("discount_code_id", sa.Integer(), sa.ForeignKey("discount_codes.id"), nullable=True),
            sa.Column("free_shipping", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("payment_status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("payment_method", sa.String(length=20), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("shipping_name", sa.String(length=120), nullable=True),
            sa.Column("shipping_address_1", sa.String(length=255), nullable=True),
            sa.Column("shipping_address_2", sa.String(length=255), nullable=True),
            sa.Column("shipping_city", sa.String(length=120), nullable=True),
            sa.Column("shipping_postal_code", sa.String(length=20), nullable=True),
            sa.Column("shipping_country", sa.String(length=80), nullable=True),
            sa.Column("shipping_phone", sa.String(length=30), nullable=True),
            _created_at(),
            _updated_at(),
        )
        op.create_index("ix_orders_buyer_id", "orders", ["buyer_id"])
        op.create_index("ix_orders_status", "orders", ["status"])
        op.create_index("ix_orders_discount_code_id", "orders", ["discount_code_id"])

    if "order_items" not in existing:
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        )
        op.create_index("ix_order_items_order_id", "order_items", ["order_id"])
        op.create_index("ix_order_items_product_id", "order_items", ["product_id"])
        op.create_index("ix_order_items_seller_id", "order_items", ["seller_id"])

    if "discount_redemptions" not in existing:
        op.create_table(
            "discount_redemptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("discount_code_id", sa.Integer(), sa.ForeignKey("discount_codes.id"), nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False, unique=True),
            sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
            _created_at(),
        )
        op.create_index("ix_discount_redemptions_discount_code_id", "discount_redemptions", ["discount_code_id"])
        op.create_index("ix_discount_redemptions_buyer_id", "discount_redemptions", ["buyer_id"])

    if "order_payments" not in existing:
        op.create_table(
            "order_payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id"), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False),
            sa.Column("reference", sa.String(length=120), nullable=True),
            _created_at(),
        )
        op.create_index("ix_order_payments_order_id", "order_payments", ["order_id"])


def downgrade() -> None:
    for table in (
        "order_payments",
        "discount_redemptions",
        "order_items",
        "orders",
        "discount_codes",
        "campaigns",
        "saved_items",
        "cart_items",
        "products",
        "categories",
        "users",
    ):
        op.drop_table(table)
