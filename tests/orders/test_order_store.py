from datetime import datetime, timezone
from decimal import Decimal

import pytest
import sqlalchemy as sa

from intermediator.db_tables import local_store
from intermediator.orders.models import STORAGE_KEY_ORDERS, Order, OrderItem, OrderStatus, PaymentInfo, PaymentMethod
from intermediator.orders.store import CorruptOrderStoreError, OrderStore, StaleOrderStoreError


def _order(order_id: str) -> Order:
    return Order(
        id=order_id,
        client_name=f"Cliente {order_id}",
        date_time=datetime(2025, 5, 15, 20, 0, tzinfo=timezone.utc),
        items=[OrderItem(id=f"{order_id}-item-0", name="Pizza", quantity=2, price=Decimal("10.50"))],
        payment_info=PaymentInfo(method=PaymentMethod.CASH, total=Decimal("21.00"), change=Decimal("50")),
        delivery_fee=Decimal("5.00"),
    )


@pytest.mark.asyncio
async def test_empty_store_loads_version_zero(database_url) -> None:
    snapshot = await OrderStore(database_url).load()

    assert snapshot.version == 0
    assert snapshot.orders == []


@pytest.mark.asyncio
async def test_save_and_load_round_trip_keeps_decimals(database_url) -> None:
    store = OrderStore(database_url)

    version = await store.save([_order("A"), _order("B")], expected_version=0)
    snapshot = await store.load()

    assert version == 1
    assert snapshot.version == 1
    assert [order.id for order in snapshot.orders] == ["A", "B"]
    restored = snapshot.orders[0]
    assert restored.items[0].price == Decimal("10.50")
    assert restored.payment_info.change == Decimal("50")
    assert restored.date_time == datetime(2025, 5, 15, 20, 0, tzinfo=timezone.utc)
    assert restored.status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_stale_version_is_rejected(database_url) -> None:
    store = OrderStore(database_url)
    await store.save([_order("A")], expected_version=0)

    first = await store.load()
    second = await store.load()
    await store.save([_order("A"), _order("B")], expected_version=first.version)

    with pytest.raises(StaleOrderStoreError):
        await store.save([_order("C")], expected_version=second.version)

    snapshot = await store.load()
    assert [order.id for order in snapshot.orders] == ["A", "B"]
    assert snapshot.version == 2


@pytest.mark.asyncio
async def test_concurrent_first_write_is_rejected(database_url) -> None:
    store = OrderStore(database_url)
    await store.save([_order("A")], expected_version=0)

    with pytest.raises(StaleOrderStoreError):
        await store.save([_order("B")], expected_version=0)


def test_mark_sent_returns_updated_copy() -> None:
    order = _order("A")
    sent_at = datetime(2025, 5, 16, 9, 0, tzinfo=timezone.utc)

    updated = order.mark_sent(sent_at)

    assert updated.status == OrderStatus.PROCESSING
    assert updated.sent_to_saboritte is True
    assert updated.saboritte_sent_at == sent_at
    assert order.status == OrderStatus.PENDING
    assert order.sent_to_saboritte is False


def _seed_payload(database_url: str, payload: list[dict], *, version: int = 3) -> None:
    engine = sa.create_engine(database_url.replace("+aiosqlite", ""))
    with engine.begin() as connection:
        connection.execute(
            sa.insert(local_store).values(
                storage_key=STORAGE_KEY_ORDERS,
                payload=payload,
                version=version,
                updated_at=datetime(2025, 5, 15, tzinfo=timezone.utc),
            )
        )
    engine.dispose()


@pytest.mark.asyncio
async def test_invalid_stored_record_raises_store_error(database_url) -> None:
    _seed_payload(database_url, [{"id": "X", "client_name": "a"}])

    with pytest.raises(CorruptOrderStoreError, match="date_time"):
        await OrderStore(database_url).load()


@pytest.mark.asyncio
async def test_unknown_stored_keys_are_ignored(database_url) -> None:
    legacy = _order("A").model_dump(mode="json")
    legacy["saboritte_order_id"] = "SAB-9"
    _seed_payload(database_url, [legacy])

    snapshot = await OrderStore(database_url).load()

    assert snapshot.version == 3
    assert [order.id for order in snapshot.orders] == ["A"]
    assert "saboritte_order_id" not in snapshot.orders[0].model_dump()
