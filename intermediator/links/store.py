"""Persistence for Plus to Saboritte product links.

Links are only ever created by an explicit ``create_link``/``link_products``
call; the order pipeline reads them through :mod:`intermediator.links.resolver`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from intermediator.common.db import session_scope
from intermediator.db_tables import product_links

UNIQUE_VIOLATION_PGCODE = "23505"
ALREADY_LINKED_MESSAGE = "Vinculação já existe"


class DuplicateLinkConflict(RuntimeError):
    """A link for this Plus product or Saboritte product/variation already exists."""


@dataclass(frozen=True)
class PlusProductRef:
    id: str
    name: str
    category: str = ""
    price: str = ""
    promo_price: str = ""
    enabled: bool = True


@dataclass(frozen=True)
class SaboritteProductRef:
    id: str
    name: str
    category: str = ""
    price: str = ""
    enabled: bool = True
    image: Optional[str] = None


@dataclass(frozen=True)
class ProductLink:
    id: int
    plus_id: str
    plus_name: str
    plus_category: str
    plus_price: str
    plus_promo_price: str
    plus_enabled: bool
    saboritte_id: str
    saboritte_name: str
    saboritte_category: str
    saboritte_price: str
    saboritte_enabled: bool
    saboritte_image: Optional[str]
    variation_description: str
    variation_price: Optional[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ProductLink:
        return cls(**{name: row[name] for name in cls.__dataclass_fields__})


@dataclass
class LinkOutcome:
    success: bool
    message: str
    link: Optional[ProductLink] = None


def _is_unique_violation(exc: IntegrityError) -> bool:
    if getattr(exc.orig, "pgcode", None) == UNIQUE_VIOLATION_PGCODE:
        return True
    return "unique" in str(exc).lower()


class ProductLinkStore:
    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    async def create_link(
        self,
        plus: PlusProductRef,
        saboritte: SaboritteProductRef,
        *,
        variation_description: str = "",
        variation_price: str | None = None,
        now: datetime | None = None,
    ) -> ProductLink:
        timestamp = now or datetime.now(timezone.utc)
        values = {
            "plus_id": plus.id,
            "plus_name": plus.name,
            "plus_category": plus.category,
            "plus_price": plus.price,
            "plus_promo_price": plus.promo_price,
            "plus_enabled": plus.enabled,
            "saboritte_id": saboritte.id,
            "saboritte_name": saboritte.name,
            "saboritte_category": saboritte.category,
            "saboritte_price": saboritte.price,
            "saboritte_enabled": saboritte.enabled,
            "saboritte_image": saboritte.image,
            "variation_description": (variation_description or "").strip(),
            "variation_price": variation_price,
            "created_at": timestamp,
            "updated_at": timestamp,
        }
        async with session_scope(self.database_url) as session:
            try:
                result = await session.execute(sa.insert(product_links).values(**values))
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                if _is_unique_violation(exc):
                    raise DuplicateLinkConflict(ALREADY_LINKED_MESSAGE) from exc
                raise
        return ProductLink(id=int(result.inserted_primary_key[0]), **values)

    async def all_links(self) -> list[ProductLink]:
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(sa.select(product_links).order_by(product_links.c.id))).mappings()
            return [ProductLink.from_row(row) for row in rows]

    async def first_with_name(self, plus_name: str) -> ProductLink | None:
        stmt = (
            sa.select(product_links)
            .where(product_links.c.plus_name == plus_name)
            .order_by(product_links.c.id)
            .limit(1)
        )
        async with session_scope(self.database_url) as session:
            row = (await session.execute(stmt)).mappings().first()
        return ProductLink.from_row(row) if row else None

    async def delete_link(self, link_id: int) -> bool:
        async with session_scope(self.database_url) as session:
            result = await session.execute(sa.delete(product_links).where(product_links.c.id == link_id))
            await session.commit()
        return bool(result.rowcount)


async def link_products(
    store: ProductLinkStore,
    plus: PlusProductRef,
    saboritte: SaboritteProductRef,
    *,
    variation_description: str = "",
    variation_price: str | None = None,
) -> LinkOutcome:
    try:
        link = await store.create_link(
            plus,
            saboritte,
            variation_description=variation_description,
            variation_price=variation_price,
        )
    except DuplicateLinkConflict as exc:
        return LinkOutcome(success=False, message=str(exc))
    return LinkOutcome(success=True, message="Produtos vinculados com sucesso", link=link)


async def list_links(store: ProductLinkStore) -> list[ProductLink]:
    return await store.all_links()


async def delete_link(store: ProductLinkStore, link_id: int) -> LinkOutcome:
    if await store.delete_link(link_id):
        return LinkOutcome(success=True, message="Vinculação removida")
    return LinkOutcome(success=False, message="Vinculação não encontrada")
