"""Versioned wholesale storage of the local order collection.

The whole collection lives in a single ``local_store`` row. Writers must pass
the version they loaded; a mismatch means somebody else wrote in between and
raises :class:`StaleOrderStoreError` instead of silently losing their update.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable

import sqlalchemy as sa
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from intermediator.common.db import session_scope
from intermediator.db_tables import local_store
from intermediator.orders.models import STORAGE_KEY_ORDERS, Order


class OrderStoreError(RuntimeError):
    """The stored order collection cannot be read or written as loaded."""


class StaleOrderStoreError(OrderStoreError):
    def __init__(self, storage_key: str, expected_version: int) -> None:
        super().__init__(
            f"order store {storage_key!r} changed since version {expected_version} was loaded"
        )
        self.storage_key = storage_key
        self.expected_version = expected_version


class CorruptOrderStoreError(OrderStoreError):
    def __init__(self, storage_key: str, cause: ValidationError) -> None:
        super().__init__(
            f"order store {storage_key!r} holds {cause.error_count()} invalid field(s); first: {_first_error(cause)}"
        )
        self.storage_key = storage_key


def _first_error(cause: ValidationError) -> str:
    error = cause.errors()[0]
    location = ".".join(str(part) for part in error["loc"])
    return f"{location}: {error['msg']}"


@dataclass(frozen=True)
class OrderSnapshot:
    version: int
    orders: list[Order] = field(default_factory=list)

    def ids(self) -> set[str]:
        return {order.id for order in self.orders}

    def by_id(self) -> dict[str, Order]:
        return {order.id: order for order in self.orders}


class OrderStore:
    def __init__(self, database_url: str, *, storage_key: str = STORAGE_KEY_ORDERS) -> None:
        self.database_url = database_url
        self.storage_key = storage_key

    async def load(self) -> OrderSnapshot:
        stmt = sa.select(local_store.c.payload, local_store.c.version).where(
            local_store.c.storage_key == self.storage_key
        )
        async with session_scope(self.database_url) as session:
            row = (await session.execute(stmt)).first()
        if row is None:
            return OrderSnapshot(version=0)
        try:
            orders = [Order.model_validate(entry) for entry in (row.payload or [])]
        except ValidationError as exc:
            raise CorruptOrderStoreError(self.storage_key, exc) from exc
        return OrderSnapshot(version=int(row.version), orders=orders)

    async def save(self, orders: Iterable[Order], *, expected_version: int) -> int:
        payload = [order.model_dump(mode="json") for order in orders]
        new_version = expected_version + 1
        now = datetime.now(timezone.utc)

        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.update(local_store)
                .where(
                    local_store.c.storage_key == self.storage_key,
                    local_store.c.version == expected_version,
                )
                .values(payload=payload, version=new_version, updated_at=now)
            )
            if result.rowcount == 1:
                await session.commit()
                return new_version

            if expected_version != 0:
                await session.rollback()
                raise StaleOrderStoreError(self.storage_key, expected_version)

            try:
                await session.execute(
                    sa.insert(local_store).values(
                        storage_key=self.storage_key,
                        payload=payload,
                        version=new_version,
                        updated_at=now,
                    )
                )
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise StaleOrderStoreError(self.storage_key, expected_version) from exc
        return new_version
