from __future__ import annotations

import sqlalchemy as sa

metadata = sa.MetaData()

_ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


local_store = sa.Table(
    "local_store",
    metadata,
    sa.Column("storage_key", sa.String(length=64), primary_key=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)


product_links = sa.Table(
    "product_links",
    metadata,
    sa.Column("id", _ID_TYPE, primary_key=True, autoincrement=True),
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
    sa.Column("saboritte_image", sa.Text()),
    # "" rather than NULL so the saboritte/variation uniqueness also covers unvaried links.
    sa.Column("variation_description", sa.Text(), nullable=False, server_default=""),
    sa.Column("variation_price", sa.String(length=32)),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("plus_id", name="uq_product_links_plus_id"),
    sa.UniqueConstraint(
        "saboritte_id", "variation_description", name="uq_product_links_saboritte_variation"
    ),
    sqlite_autoincrement=True,
)
sa.Index("ix_product_links_plus_name", product_links.c.plus_name)


plus_products = sa.Table(
    "plus_products",
    metadata,
    sa.Column("id", sa.String(length=64), primary_key=True),
    sa.Column("nome", sa.Text(), nullable=False),
    sa.Column("valor", sa.String(length=32), nullable=False, server_default=""),
    sa.Column("promocao", sa.String(length=32), nullable=False, server_default=""),
    sa.Column("habilitado", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("categoria", sa.Text(), nullable=False, server_default=""),
    sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
)


saboritte_products = sa.Table(
    "saboritte_products",
    metadata,
    sa.Column("id", sa.String(length=64), primary_key=True),
    sa.Column("nome", sa.Text(), nullable=False),
    sa.Column("categoria", sa.Text(), nullable=False, server_default=""),
    sa.Column("descricao", sa.Text(), nullable=False, server_default=""),
    sa.Column("preco", sa.String(length=32), nullable=False, server_default=""),
    sa.Column("ativo", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("codigo_barras", sa.String(length=64)),
    sa.Column("imagem", sa.Text()),
    sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
)


clients = sa.Table(
    "clients",
    metadata,
    sa.Column("id", _ID_TYPE, primary_key=True, autoincrement=True),
    sa.Column("nome", sa.Text(), nullable=False),
    sa.Column("telefone", sa.String(length=32), nullable=False),
    sa.Column("bloqueado", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("permitirrobo", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("permitircampanhas", sa.Boolean(), nullable=False, server_default=sa.true()),
    # Saboritte-side id; NULL for clients registered locally and not yet seen in a client sync.
    sa.Column("saboritte_id", sa.String(length=64)),
    sa.Column("created_at", sa.DateTime(timezone=True)),
    sa.Column("updated_at", sa.DateTime(timezone=True)),
    sa.UniqueConstraint("saboritte_id", name="uq_clients_saboritte_id"),
    sqlite_autoincrement=True,
)


notifications = sa.Table(
    "notifications",
    metadata,
    sa.Column("id", _ID_TYPE, primary_key=True, autoincrement=True),
    sa.Column("title", sa.Text(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("type", sa.String(length=16), nullable=False),
    sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("type IN ('success','error','info')", name="ck_notifications_type"),
    sqlite_autoincrement=True,
)


configurations = sa.Table(
    "configurations",
    metadata,
    sa.Column("id", _ID_TYPE, primary_key=True, autoincrement=True),
    sa.Column("platform", sa.String(length=16), nullable=False),
    sa.Column("config_key", sa.String(length=64), nullable=False),
    sa.Column("config_value", sa.Text()),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
    sa.Column("updated_at", sa.DateTime(timezone=True)),
    sa.UniqueConstraint("platform", "config_key", name="uq_configurations_platform_key"),
    sa.CheckConstraint("platform IN ('plus','saboritte')", name="ck_configurations_platform"),
    sqlite_autoincrement=True,
)
