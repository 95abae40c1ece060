from datetime import datetime
from decimal import Decimal

import pytest
from zoneinfo import ZoneInfo

from intermediator.orders.models import OrderStatus, PaymentMethod
from intermediator.orders.parser import (
    DEFAULT_CITY,
    DEFAULT_NEIGHBORHOOD,
    DEFAULT_STATE,
    build_order,
    classify_payment,
    decompose_address,
    parse_amount,
    parse_order_details,
)
from intermediator.platforms.schemas import SourceOrder

DETAILS = (
    "Pedido #123<br>"
    "Telefone: (27) 99999-8888<br>"
    "Endereço: Rua das Flores, 123, Jardim Camburi, Casa 2, Próximo ao mercado, Vitória/ES<br>"
    "==== Conteúdo ====<br>"
    "2 - X-Burger - R$ 18.50 - sem cebola<br>"
    "1 - Coca-Cola 350ml - R$ 6,00<br>"
    "<br>"
    "TAXA DE ENTREGA: R$ 5.00<br>"
    "TAXA DE CONVENIÊNCIA: R$ 0.99<br>"
    "Tempo de entrega: 40-50min<br>"
    "Pagamento: Cartão de Crédito<br>"
    "Troco para: SEM TROCO<br>"
    "SUBTOTAL: R$ 43.00<br>"
    "TOTAL: R$ 48.99"
)


def test_parse_full_order_details() -> None:
    parsed = parse_order_details(DETAILS)

    assert parsed.client_phone == "(27) 99999-8888"
    assert parsed.address.street == "Rua das Flores"
    assert parsed.address.number == "123"
    assert parsed.address.neighborhood == "Jardim Camburi"
    assert parsed.address.complement == "Casa 2"
    assert parsed.address.reference == "Próximo ao mercado"
    assert parsed.address.city == "Vitória"
    assert parsed.address.state == "ES"

    assert [(item.name, item.quantity, item.price, item.notes) for item in parsed.items] == [
        ("X-Burger", 2, Decimal("18.50"), "sem cebola"),
        ("Coca-Cola 350ml", 1, Decimal("6.00"), None),
    ]
    assert parsed.delivery_fee == Decimal("5.00")
    assert parsed.convenience_fee == Decimal("0.99")
    assert parsed.estimated_delivery_time == "40-50min"
    assert parsed.payment_label == "Cartão de Crédito"
    assert parsed.payment_method == PaymentMethod.CREDIT_CARD
    assert parsed.change_for is None
    assert parsed.total == Decimal("48.99")
    assert parsed.total_is_computed is False
    assert parsed.warnings == []


def test_explicit_total_is_exact() -> None:
    parsed = parse_order_details("==== Conteúdo ====\n1 - Pizza - R$ 40.00\nTOTAL: R$ 45.50")

    assert parsed.total == Decimal("45.50")
    assert parsed.total_is_computed is False


def test_total_falls_back_to_items_plus_fees() -> None:
    parsed = parse_order_details("==== Conteúdo ====\n2 - Pizza - R$ 10.00\nTAXA DE ENTREGA: R$ 5.00")

    assert parsed.total == Decimal("25.00")
    assert parsed.total_is_computed is True
    assert "total: not found" in parsed.warnings


def test_subtotal_line_is_not_taken_as_total() -> None:
    parsed = parse_order_details("==== Conteúdo ====\n1 - Suco - R$ 8.00\nSUBTOTAL: R$ 99.00")

    assert parsed.total == Decimal("8.00")
    assert parsed.total_is_computed is True


def test_change_for_amount() -> None:
    parsed = parse_order_details("Pagamento: Dinheiro\nTroco para: R$ 50,00")

    assert parsed.payment_method == PaymentMethod.CASH
    assert parsed.change_for == Decimal("50.00")


@pytest.mark.parametrize("raw", [None, "", "texto sem marcador nenhum", 12345])
def test_garbage_input_degrades_without_raising(raw) -> None:
    parsed = parse_order_details(raw)

    assert parsed.items == []
    assert parsed.client_phone is None
    assert parsed.total == Decimal("0")
    assert parsed.payment_method == PaymentMethod.OTHER
    assert parsed.address.neighborhood == DEFAULT_NEIGHBORHOOD
    assert parsed.address.city == DEFAULT_CITY
    assert parsed.address.state == DEFAULT_STATE
    fields = {warning.split(":", 1)[0] for warning in parsed.warnings}
    assert {"client_phone", "address", "items", "payment_label", "total"} <= fields


def test_items_with_zero_quantity_or_bad_lines_are_skipped() -> None:
    parsed = parse_order_details(
        "==== Conteúdo ====\n0 - Brinde - R$ 0.00\nlinha solta\n3 - Pastel - R$ 7.00 (carne)"
    )

    assert [(item.name, item.quantity, item.notes) for item in parsed.items] == [("Pastel", 3, "(carne)")]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Telefone: 27999998888", "27999998888"),
        ("Telefone: 27 99999-8888", "27 99999-8888"),
        ("Telefone: 27 999998888", "27 999998888"),
        ("Telefone: (11) 3333-4444", "(11) 3333-4444"),
    ],
)
def test_phone_variants(text, expected) -> None:
    assert parse_order_details(text).client_phone == expected


@pytest.mark.parametrize(
    "label, expected",
    [
        ("Cartão de Crédito", PaymentMethod.CREDIT_CARD),
        ("CARTÃO DE DÉBITO", PaymentMethod.DEBIT_CARD),
        ("cartao debito", PaymentMethod.DEBIT_CARD),
        ("Dinheiro", PaymentMethod.CASH),
        ("À vista", PaymentMethod.CASH),
        ("Pix", PaymentMethod.PIX),
        ("Vale refeição", PaymentMethod.OTHER),
        (None, PaymentMethod.OTHER),
    ],
)
def test_classify_payment(label, expected) -> None:
    assert classify_payment(label) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("45.50", Decimal("45.50")),
        ("45,50", Decimal("45.50")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("10.", Decimal("10")),
        ("", None),
        (None, None),
    ],
)
def test_parse_amount(raw, expected) -> None:
    assert parse_amount(raw) == expected


def test_decompose_address_defaults() -> None:
    address = decompose_address("Rua Sem Nome")

    assert address.street == "Rua Sem Nome"
    assert address.number == ""
    assert address.neighborhood == "Centro"
    assert address.city == "Cidade"
    assert address.state == "ES"


def test_decompose_address_complement_keyword_is_not_a_number() -> None:
    address = decompose_address("Av. Central, Apto 301, Praia do Canto, Vitória/ES")

    assert address.number == ""
    assert address.complement == "Apto 301"
    assert address.neighborhood == "Praia do Canto"


def test_build_order_from_source_record() -> None:
    tz = ZoneInfo("America/Sao_Paulo")
    source = SourceOrder.model_validate(
        {"id": 987, "cliente": "João", "dataHora": "Data: 15/05/2025 - Hora: 23:23:34", "detalhes": DETAILS}
    )

    order = build_order(source, tz=tz)

    assert order.id == "987"
    assert order.client_name == "João"
    assert order.client_phone == "(27) 99999-8888"
    assert order.date_time == datetime(2025, 5, 15, 23, 23, 34, tzinfo=tz)
    assert order.status == OrderStatus.PENDING
    assert [item.id for item in order.items] == ["987-item-0", "987-item-1"]
    assert order.payment_info.total == Decimal("48.99")
    assert order.payment_info.paid is False
    assert order.sent_to_saboritte is False
    assert order.raw_details == DETAILS


def test_build_order_uses_now_for_unparseable_date() -> None:
    tz = ZoneInfo("America/Sao_Paulo")
    now = datetime(2025, 6, 1, 12, 0, tzinfo=tz)
    source = SourceOrder(id="1", cliente="Ana", dataHora="ontem à noite", detalhes="")

    order = build_order(source, tz=tz, now=now)

    assert order.date_time == now
    assert order.items == []
