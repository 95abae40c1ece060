from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from intermediator.clients.registry import ClientMatch
from intermediator.common.phone import normalize_phone
from intermediator.orders.models import DeliveryAddress, Order, OrderItem, PaymentMethod
from intermediator.orders.parser import decompose_address

SABORITTE_PAYMENT_LABELS = {
    PaymentMethod.CREDIT_CARD: "Cartão de Crédito",
    PaymentMethod.DEBIT_CARD: "Cartão de Débito",
    PaymentMethod.CASH: "Dinheiro",
    PaymentMethod.PIX: "PIX",
}
DEFAULT_PAYMENT_LABEL = "Dinheiro"


@dataclass(frozen=True)
class LinkedItem:
    item: OrderItem
    saboritte_id: str
    saboritte_name: str


def saboritte_payment_label(method: PaymentMethod) -> str:
    return SABORITTE_PAYMENT_LABELS.get(method, DEFAULT_PAYMENT_LABEL)


def _recompose_address(address: DeliveryAddress) -> str:
    parts = [address.street, address.number, address.neighborhood, address.complement]
    city_state = f"{address.city}/{address.state}" if address.city and address.state else address.city
    return ", ".join([*parts, city_state])


def flatten_product_ids(linked_items: Sequence[LinkedItem]) -> list[str]:
    """Saboritte has no quantity field: each id is repeated once per unit."""

    product_ids: list[str] = []
    for linked in linked_items:
        product_ids.extend([linked.saboritte_id] * linked.item.quantity)
    return product_ids


def build_saboritte_payload(
    order: Order,
    linked_items: Sequence[LinkedItem],
    client_match: ClientMatch,
) -> dict[str, Any]:
    address = decompose_address(_recompose_address(order.delivery_address))
    existing = client_match.client if client_match.exists else None

    payload: dict[str, Any] = {
        "id": order.id,
        "nome": existing.nome if existing else order.client_name,
        "telefone": normalize_phone(order.client_phone),
        "endereco": address.street,
        "numero": address.number,
        "bairro": address.neighborhood,
        "cidade": address.city,
        "estado": address.state,
        "complemento": address.complement or order.delivery_address.complement,
        "id_produtos": flatten_product_ids(linked_items),
        "pagamento": saboritte_payment_label(order.payment_info.method),
        "contactIsexiste": existing is not None,
    }
    if existing is not None:
        payload["clienteId"] = existing.id
    return payload
