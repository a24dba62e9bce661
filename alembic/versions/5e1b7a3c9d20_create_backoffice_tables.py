"""create_backoffice_tables

Revision ID: 5e1b7a3c9d20
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "5e1b7a3c9d20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
NOW = sa.text("CURRENT_TIMESTAMP")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "tokens",
        sa.Column("shop_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("access_token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("refresh_token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shop_name", sa.Text(), nullable=True),
        sa.Column("region", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("shop_id"),
    )

    op.create_table(
        "shops",
        sa.Column("shop_id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("shop_name", sa.Text(), nullable=True),
        sa.Column("region", sa.Text(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("shop_id"),
    )

    op.create_table(
        "region_settings",
        sa.Column("region", sa.Text(), nullable=False),
        sa.Column("currency", sa.Text(), nullable=False),
        sa.Column("currency_symbol", sa.Text(), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("exchange_rate", sa.Float(), nullable=False),
        sa.Column("commission_rate", sa.Float(), nullable=True),
        sa.Column("service_fee_rate", sa.Float(), nullable=True),
        sa.Column("transaction_fee_rate", sa.Float(), nullable=True),
        sa.Column("shipping_cost_local", sa.Float(), nullable=True),
        sa.Column("shipping_cost_intl", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.PrimaryKeyConstraint("region"),
    )

    op.create_table(
        "price_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shop_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rule_type", sa.Text(), nullable=False),
        sa.Column("adjustment_value", sa.Float(), nullable=True),
        sa.Column("adjustment_direction", sa.Text(), nullable=False),
        sa.Column("min_price", sa.Float(), nullable=True),
        sa.Column("max_price", sa.Float(), nullable=True),
        sa.Column("min_margin_percent", sa.Float(), nullable=True),
        sa.Column("apply_to_category", sa.Text(), nullable=True),
        sa.Column("apply_to_tags", JSONType, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_price_rules_shop_id", "price_rules", ["shop_id"])

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("shop_id", sa.BigInteger(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("sku", sa.Text(), nullable=True),
        sa.Column("category_id", sa.BigInteger(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("images", JSONType, nullable=False),
        sa.Column("attributes", JSONType, nullable=False),
        sa.Column("original_price", sa.Float(), nullable=True),
        sa.Column("current_price", sa.Float(), nullable=True),
        sa.Column("currency", sa.Text(), nullable=True),
        sa.Column("stock", sa.Integer(), nullable=True),
        sa.Column("status", sa.Text(), nullable=True),
        sa.Column("marketplace_status", sa.Text(), nullable=True),
        sa.Column("sold", sa.Integer(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=True),
        sa.Column("likes", sa.Integer(), nullable=True),
        sa.Column("rating_star", sa.Float(), nullable=True),
        sa.Column("remote_create_time", sa.BigInteger(), nullable=True),
        sa.Column("remote_update_time", sa.BigInteger(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cost_price", sa.Float(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("source_urls", JSONType, nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("custom_price", sa.Float(), nullable=True),
        sa.Column("price_rule_id", sa.Integer(), nullable=True),
        sa.Column("tags", JSONType, nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["price_rule_id"], ["price_rules.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_id"),
    )
    op.create_index("ix_products_shop_id", "products", ["shop_id"])

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Text(), nullable=False),
        sa.Column("old_price", sa.Float(), nullable=True),
        sa.Column("new_price", sa.Float(), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=False),
        sa.Column("price_rule_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "order_costs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("shop_id", sa.BigInteger(), nullable=False),
        sa.Column("order_id", sa.Text(), nullable=False),
        sa.Column("order_sn", sa.Text(), nullable=True),
        sa.Column("order_status", sa.Text(), nullable=True),
        sa.Column("currency", sa.Text(), nullable=True),
        sa.Column("remote_create_time", sa.BigInteger(), nullable=True),
        sa.Column("sales_local", sa.Float(), nullable=True),
        sa.Column("commission_local", sa.Float(), nullable=True),
        sa.Column("intl_shipping", sa.Float(), nullable=True),
        sa.Column("local_shipping", sa.Float(), nullable=True),
        sa.Column("product_cost", sa.Float(), nullable=True),
        sa.Column("other_cost", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_id", "order_id", name="uq_order_costs_shop_order"),
    )
    op.create_index("ix_order_costs_shop_id", "order_costs", ["shop_id"])

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("shop_id", sa.BigInteger(), nullable=False),
        sa.Column("sync_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("items_fetched", sa.Integer(), nullable=True),
        sa.Column("items_synced", sa.Integer(), nullable=True),
        sa.Column("items_failed", sa.Integer(), nullable=True),
        sa.Column("api_calls", sa.Integer(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("meta", JSONType, nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sync_runs_shop_id", "sync_runs", ["shop_id"])

    op.create_table(
        "sync_run_errors",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("run_id", sa.Uuid(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=True),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("stack", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=True),
        sa.ForeignKeyConstraint(["run_id"], ["sync_runs.id"]),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("sync_run_errors")
    op.drop_index("ix_sync_runs_shop_id", table_name="sync_runs")
    op.drop_table("sync_runs")
    op.drop_index("ix_order_costs_shop_id", table_name="order_costs")
    op.drop_table("order_costs")
    op.drop_table("price_history")
    op.drop_index("ix_products_shop_id", table_name="products")
    op.drop_table("products")
    op.drop_index("ix_price_rules_shop_id", table_name="price_rules")
    op.drop_table("price_rules")
    op.drop_table("region_settings")
    op.drop_table("shops")
    op.drop_table("tokens")
