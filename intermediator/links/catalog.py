"""Local copies of both menus: the pools products are linked from and to."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import sqlalchemy as sa

from intermediator.common.db import session_scope, transaction_scope
from intermediator.db_tables import plus_products, saboritte_products
from intermediator.links.store import PlusProductRef, SaboritteProductRef
from intermediator.platforms.schemas import MenuResponse, SaboritteMenuResponse


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    nome: str
    valor: str = ""
    promocao: str = ""
    habilitado: bool = True
    categoria: str = ""

    def as_ref(self) -> PlusProductRef:
        return PlusProductRef(
            id=self.id,
            name=self.nome,
            category=self.categoria,
            price=self.valor,
            promo_price=self.promocao,
            enabled=self.habilitado,
        )


@dataclass(frozen=True)
class SaboritteCatalogProduct:
    id: str
    nome: str
    categoria: str = ""
    descricao: str = ""
    preco: str = ""
    ativo: bool = True
    codigo_barras: Optional[str] = None
    imagem: Optional[str] = None

    def as_ref(self) -> SaboritteProductRef:
        return SaboritteProductRef(
            id=self.id,
            name=self.nome,
            category=self.categoria,
            price=self.preco,
            enabled=self.ativo,
            image=self.imagem,
        )


def flatten_menu(menu: MenuResponse) -> list[CatalogProduct]:
    """One product per Plus id, tagged with the name of the menu it came from."""

    seen: set[str] = set()
    products: list[CatalogProduct] = []
    for section in menu.menus:
        for product in section.produtos:
            if product.id in seen:
                continue
            seen.add(product.id)
            products.append(
                CatalogProduct(
                    id=product.id,
                    nome=product.nome,
                    valor=product.valor,
                    promocao=product.promocao,
                    habilitado=product.habilitado,
                    categoria=section.nome,
                )
            )
    return products


def flatten_saboritte_menu(menu: SaboritteMenuResponse) -> list[SaboritteCatalogProduct]:
    """Saboritte groups products under category keys; the key wins over a per-product category."""

    seen: set[str] = set()
    products: list[SaboritteCatalogProduct] = []
    for category, entries in menu.categorias.items():
        for product in entries:
            if product.id in seen:
                continue
            seen.add(product.id)
            products.append(
                SaboritteCatalogProduct(
                    id=product.id,
                    nome=product.nome,
                    categoria=category,
                    descricao=product.descricao,
                    preco=product.preco,
                    ativo=product.ativo,
                    codigo_barras=product.codigoBarras,
                    imagem=product.imagem,
                )
            )
    return products


class PlusCatalogStore:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    async def replace_all(self, products: Iterable[CatalogProduct]) -> int:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "id": product.id,
                "nome": product.nome,
                "valor": product.valor,
                "promocao": product.promocao,
                "habilitado": product.habilitado,
                "categoria": product.categoria,
                "synced_at": now,
            }
            for product in products
        ]
        async with transaction_scope(self.database_url) as session:
            await session.execute(sa.delete(plus_products))
            if rows:
                await session.execute(sa.insert(plus_products), rows)
        return len(rows)

    async def all_products(self) -> list[CatalogProduct]:
        stmt = sa.select(plus_products).order_by(plus_products.c.categoria, plus_products.c.nome)
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [_plus_product(row) for row in rows]

    async def get(self, product_id: str) -> CatalogProduct | None:
        stmt = sa.select(plus_products).where(plus_products.c.id == product_id)
        async with session_scope(self.database_url) as session:
            row = (await session.execute(stmt)).mappings().first()
        return _plus_product(row) if row else None


class SaboritteCatalogStore:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    async def replace_all(self, products: Iterable[SaboritteCatalogProduct]) -> int:
        now = datetime.now(timezone.utc)
        rows = [
            {
                "id": product.id,
                "nome": product.nome,
                "categoria": product.categoria,
                "descricao": product.descricao,
                "preco": product.preco,
                "ativo": product.ativo,
                "codigo_barras": product.codigo_barras,
                "imagem": product.imagem,
                "synced_at": now,
            }
            for product in products
        ]
        async with transaction_scope(self.database_url) as session:
            await session.execute(sa.delete(saboritte_products))
            if rows:
                await session.execute(sa.insert(saboritte_products), rows)
        return len(rows)

    async def all_products(self) -> list[SaboritteCatalogProduct]:
        stmt = sa.select(saboritte_products).order_by(saboritte_products.c.categoria, saboritte_products.c.nome)
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(stmt)).mappings().all()
        return [_saboritte_product(row) for row in rows]

    async def get(self, product_id: str) -> SaboritteCatalogProduct | None:
        stmt = sa.select(saboritte_products).where(saboritte_products.c.id == product_id)
        async with session_scope(self.database_url) as session:
            row = (await session.execute(stmt)).mappings().first()
        return _saboritte_product(row) if row else None


def _plus_product(row) -> CatalogProduct:
    return CatalogProduct(
        id=row["id"],
        nome=row["nome"],
        valor=row["valor"],
        promocao=row["promocao"],
        habilitado=bool(row["habilitado"]),
        categoria=row["categoria"],
    )


def _saboritte_product(row) -> SaboritteCatalogProduct:
    return SaboritteCatalogProduct(
        id=row["id"],
        nome=row["nome"],
        categoria=row["categoria"],
        descricao=row["descricao"],
        preco=row["preco"],
        ativo=bool(row["ativo"]),
        codigo_barras=row["codigo_barras"],
        imagem=row["imagem"],
    )
