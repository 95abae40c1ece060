"""Saboritte product catalog and Saboritte client ids"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_saboritte_catalog"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "saboritte_products",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("nome", sa.Text(), nullable=False),
        sa.Column("categoria", sa.Text(), nullable=False, server_default=""),
        sa.Column("descricao", sa.Text(), nullable=False, server_default=""),
        sa.Column("preco", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("codigo_barras", sa.String(length=64), nullable=True),
        sa.Column("imagem", sa.Text(), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("clients") as batch_op:
        batch_op.add_column(sa.Column("saboritte_id", sa.String(length=64), nullable=True))
        batch_op.create_unique_constraint("uq_clients_saboritte_id", ["saboritte_id"])


def downgrade() -> None:
    with op.batch_alter_table("clients") as batch_op:
        batch_op.drop_constraint("uq_clients_saboritte_id", type_="unique")
        batch_op.drop_column("saboritte_id")
    op.drop_table("saboritte_products")
