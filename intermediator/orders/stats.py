"""Read-side helpers over the local order collection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, Optional

from intermediator.orders.models import Order, OrderStatus


@dataclass(frozen=True)
class OrderFilters:
    status: Optional[OrderStatus] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    client_name: Optional[str] = None
    min_total: Optional[Decimal] = None
    max_total: Optional[Decimal] = None


@dataclass
class OrderStats:
    total: int = 0
    by_status: Dict[str, int] = field(default_factory=dict)
    revenue: Decimal = Decimal("0")
    today_count: int = 0
    today_revenue: Decimal = Decimal("0")


def calculate_order_total(order: Order) -> Decimal:
    """Items plus fees, independent of the TOTAL line parsed from the text."""

    items = sum((item.line_total for item in order.items), Decimal("0"))
    return items + (order.delivery_fee or Decimal("0")) + (order.convenience_fee or Decimal("0"))


def _local_date(order: Order, tz: tzinfo | None) -> date:
    moment = order.date_time
    if tz is not None and moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def filter_orders(orders: Iterable[Order], filters: OrderFilters, *, tz: tzinfo | None = None) -> list[Order]:
    needle = (filters.client_name or "").strip().casefold()
    selected: list[Order] = []
    for order in orders:
        if filters.status is not None and order.status != filters.status:
            continue
        day = _local_date(order, tz)
        if filters.date_from is not None and day < filters.date_from:
            continue
        if filters.date_to is not None and day > filters.date_to:
            continue
        if needle and needle not in order.client_name.casefold():
            continue
        total = calculate_order_total(order)
        if filters.min_total is not None and total < filters.min_total:
            continue
        if filters.max_total is not None and total > filters.max_total:
            continue
        selected.append(order)
    return selected


def order_stats(orders: Iterable[Order], *, tz: tzinfo, now: datetime | None = None) -> OrderStats:
    today = (now or datetime.now(tz)).astimezone(tz).date()
    stats = OrderStats(by_status={status.value: 0 for status in OrderStatus})
    for order in orders:
        stats.total += 1
        stats.by_status[order.status.value] += 1
        total = calculate_order_total(order)
        if order.status != OrderStatus.CANCELLED:
            stats.revenue += total
        if _local_date(order, tz) == today:
            stats.today_count += 1
            stats.today_revenue += total
    return stats
