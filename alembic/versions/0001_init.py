"""Initial tables for the order intermediator"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

_ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "local_store",
        sa.Column("storage_key", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("storage_key"),
    )
    op.create_table(
        "product_links",
        sa.Column("id", _ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("plus_id", sa.String(length=64), nullable=False),
        sa.Column("plus_name", sa.Text(), nullable=False),
        sa.Column("plus_category", sa.Text(), nullable=False, server_default=""),
        sa.Column("plus_price", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("plus_promo_price", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("plus_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("saboritte_id", sa.String(length=64), nullable=False),
        sa.Column("saboritte_name", sa.Text(), nullable=False),
        sa.Column("saboritte_category", sa.Text(), nullable=False, server_default=""),
        sa.Column("saboritte_price", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("saboritte_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("saboritte_image", sa.Text(), nullable=True),
        sa.Column("variation_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("variation_price", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("plus_id", name="uq_product_links_plus_id"),
        sa.UniqueConstraint(
            "saboritte_id", "variation_description", name="uq_product_links_saboritte_variation"
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_product_links_plus_name", "product_links", ["plus_name"])
    op.create_table(
        "plus_products",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("nome", sa.Text(), nullable=False),
        sa.Column("valor", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("promocao", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("habilitado", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("categoria", sa.Text(), nullable=False, server_default=""),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "clients",
        sa.Column("id", _ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("nome", sa.Text(), nullable=False),
        sa.Column("telefone", sa.String(length=32), nullable=False),
        sa.Column("bloqueado", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("permitirrobo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("permitircampanhas", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "notifications",
        sa.Column("id", _ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('success','error','info')", name="ck_notifications_type"),
        sqlite_autoincrement=True,
    )
    op.create_table(
        "configurations",
        sa.Column("id", _ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column("config_key", sa.String(length=64), nullable=False),
        sa.Column("config_value", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "config_key", name="uq_configurations_platform_key"),
        sa.CheckConstraint("platform IN ('plus','saboritte')", name="ck_configurations_platform"),
        sqlite_autoincrement=True,
    )


def downgrade() -> None:
    op.drop_table("configurations")
    op.drop_table("notifications")
    op.drop_table("clients")
    op.drop_table("plus_products")
    op.drop_index("ix_product_links_plus_name", table_name="product_links")
    op.drop_table("product_links")
    op.drop_table("local_store")
