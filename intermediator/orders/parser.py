"""Best-effort extraction of structured order data from Plus free-text details.

The Plus API does not give any structure for ``detalhes``; it is a block of
lines with a handful of recognisable markers::

    Telefone: 27 99999-8888
    Endereço: Rua das Flores, 123, Jardim Camburi, Vitória/ES
    ==== Conteúdo ====
    2 - X-Burger - R$ 18.50 sem cebola
    1 - Coca-Cola 350ml - R$ 6.00

    TAXA DE ENTREGA: R$ 5.00
    Pagamento: Cartão de Crédito
    TOTAL: R$ 48.00

Each field has its own extractor. Extractors never raise into the caller; a
field that cannot be read keeps its default and the reason is appended to
``ParsedOrderDetails.warnings``.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, NamedTuple, Optional

from intermediator.orders.models import (
    DeliveryAddress,
    Order,
    OrderItem,
    OrderStatus,
    PaymentInfo,
    PaymentMethod,
)
from intermediator.platforms.schemas import SourceOrder

DEFAULT_NEIGHBORHOOD = "Centro"
DEFAULT_CITY = "Cidade"
DEFAULT_STATE = "ES"

_AMOUNT = r"(\d[\d.,]*)"

_BR_TAG = re.compile(r"<br\s*/?>", re.I)
_PHONE = re.compile(
    r"Telefone:[^\n]*?"
    r"(\(\d{2}\)\s?\d{4,5}-?\d{4}|\d{2}\s\d{4,5}-\d{4}|\d{2}\s\d{8,9}|\d{10,11})"
)
_ADDRESS_LINE = re.compile(r"Endereço:\s*([^\n]+)")
_CITY_STATE = re.compile(r"([^,/\d]+?)\s*/\s*([A-Z]{2})\b")
_REFERENCE_PREFIX = re.compile(
    r"^(?:em frente|pr[óo]ximo|refer[êe]ncia|port[ãa]o)\b", re.I
)
_COMPLEMENT_PREFIX = re.compile(r"^(?:casa|apto|ap|apartamento|bloco|andar)\b", re.I)
_HOUSE_NUMBER = re.compile(r"\d|^s/?n\b", re.I)
_ITEMS_SECTION = re.compile(
    r"====\s*Conte[úu]do\s*====[^\n]*\n(.*?)(?=\n\s*TAXA DE ENTREGA|\Z)", re.S
)
_ITEM_LINE = re.compile(r"^\s*(\d+)\s*-\s*(.+?)\s*-\s*R\$\s*" + _AMOUNT + r"(.*)$")
_DELIVERY_FEE = re.compile(r"TAXA DE ENTREGA:\s*R\$\s*" + _AMOUNT)
_CONVENIENCE_FEE = re.compile(r"TAXA DE CONVENI[ÊE]NCIA:\s*R\$\s*" + _AMOUNT)
_ESTIMATED_TIME = re.compile(r"Tempo de entrega:\s*(\d+(?:\s*-\s*\d+)?\s*min)", re.I)
_PAYMENT = re.compile(r"Pagamento:\s*([^\n]+)")
_CHANGE_FOR = re.compile(r"Troco para:\s*R\$\s*" + _AMOUNT)
_TOTAL = re.compile(r"(?<![A-Za-z])TOTAL:\s*R\$\s*" + _AMOUNT)
_DATE_TIME = re.compile(
    r"Data:\s*(\d{2})/(\d{2})/(\d{4})\s*-\s*Hora:\s*(\d{2}):(\d{2}):(\d{2})"
)


@dataclass
class ParsedItem:
    name: str
    quantity: int
    price: Decimal
    notes: Optional[str] = None


def _default_address() -> DeliveryAddress:
    return DeliveryAddress(neighborhood=DEFAULT_NEIGHBORHOOD, city=DEFAULT_CITY, state=DEFAULT_STATE)


@dataclass
class ParsedOrderDetails:
    client_phone: Optional[str] = None
    address: DeliveryAddress = field(default_factory=_default_address)
    items: list[ParsedItem] = field(default_factory=list)
    delivery_fee: Optional[Decimal] = None
    convenience_fee: Optional[Decimal] = None
    estimated_delivery_time: Optional[str] = None
    payment_label: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.OTHER
    change_for: Optional[Decimal] = None
    total: Decimal = Decimal("0")
    total_is_computed: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def items_total(self) -> Decimal:
        return sum((item.price * item.quantity for item in self.items), Decimal("0"))


def parse_amount(raw: str | None) -> Optional[Decimal]:
    """Parse ``45.50``, ``45,50`` and ``1.234,56`` style amounts."""

    if raw is None:
        return None
    cleaned = raw.strip().rstrip(".,")
    if not cleaned:
        return None
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", ".")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def _strip_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def classify_payment(label: str | None) -> PaymentMethod:
    if not label:
        return PaymentMethod.OTHER
    folded = _strip_accents(label).casefold()
    if "cartao" in folded and "credito" in folded:
        return PaymentMethod.CREDIT_CARD
    if "cartao" in folded and "debito" in folded:
        return PaymentMethod.DEBIT_CARD
    if "dinheiro" in folded or "vista" in folded:
        return PaymentMethod.CASH
    if "pix" in folded:
        return PaymentMethod.PIX
    return PaymentMethod.OTHER


def decompose_address(text: str | None) -> DeliveryAddress:
    """Split a one-line address into its parts.

    ``City/UF`` is taken from anywhere in the line; the remaining comma
    separated parts are street, number, then neighborhood with anything that
    looks like a complement (``casa``, ``apto``...) or a reference (``Em
    frente``, ``Portão``...) routed to those fields. Missing neighborhood,
    city and state fall back to fixed placeholders.
    """

    raw = (text or "").strip()
    city = ""
    state = ""
    remainder = raw
    city_match = _CITY_STATE.search(raw)
    if city_match:
        city = city_match.group(1).strip()
        state = city_match.group(2)
        remainder = raw[: city_match.start()] + raw[city_match.end() :]

    parts = [part.strip() for part in remainder.split(",")]
    while parts and not parts[-1]:
        parts.pop()

    street = parts[0] if parts else ""
    rest = parts[1:]
    number = ""
    if rest and _HOUSE_NUMBER.search(rest[0]) and not _COMPLEMENT_PREFIX.match(rest[0]):
        number = rest.pop(0)
    elif rest and not rest[0]:
        rest.pop(0)

    neighborhood = ""
    complements: list[str] = []
    references: list[str] = []
    for part in rest:
        if not part:
            continue
        if _REFERENCE_PREFIX.match(part):
            references.append(part)
        elif _COMPLEMENT_PREFIX.match(part):
            complements.append(part)
        elif not neighborhood:
            neighborhood = part
        else:
            complements.append(part)

    return DeliveryAddress(
        street=street,
        number=number,
        complement=", ".join(complements),
        neighborhood=neighborhood or DEFAULT_NEIGHBORHOOD,
        city=city or DEFAULT_CITY,
        state=state or DEFAULT_STATE,
        reference=", ".join(references),
    )


def _extract_phone(details: str) -> Optional[str]:
    match = _PHONE.search(details)
    return match.group(1).strip() if match else None


def _extract_address(details: str) -> Optional[DeliveryAddress]:
    match = _ADDRESS_LINE.search(details)
    if not match or not match.group(1).strip():
        return None
    return decompose_address(match.group(1))


def _extract_items(details: str) -> Optional[list[ParsedItem]]:
    section = _ITEMS_SECTION.search(details)
    if not section:
        return None
    items: list[ParsedItem] = []
    for line in section.group(1).splitlines():
        if not line.strip():
            continue
        match = _ITEM_LINE.match(line)
        if not match:
            continue
        quantity = int(match.group(1))
        price = parse_amount(match.group(3))
        if quantity <= 0 or price is None:
            continue
        notes = match.group(4).strip(" -\t") or None
        items.append(ParsedItem(name=match.group(2).strip(), quantity=quantity, price=price, notes=notes))
    return items


def _amount_extractor(pattern: re.Pattern[str], *, last: bool = False) -> Callable[[str], Optional[Decimal]]:
    def extract(details: str) -> Optional[Decimal]:
        matches = pattern.findall(details)
        if not matches:
            return None
        return parse_amount(matches[-1] if last else matches[0])

    return extract


def _extract_estimated_time(details: str) -> Optional[str]:
    match = _ESTIMATED_TIME.search(details)
    return match.group(1).strip() if match else None


def _extract_payment_label(details: str) -> Optional[str]:
    match = _PAYMENT.search(details)
    if not match:
        return None
    return match.group(1).strip() or None


class _Extractor(NamedTuple):
    field: str
    extract: Callable[[str], Any]
    expected: bool


FIELD_EXTRACTORS: tuple[_Extractor, ...] = (
    _Extractor("client_phone", _extract_phone, True),
    _Extractor("address", _extract_address, True),
    _Extractor("items", _extract_items, True),
    _Extractor("delivery_fee", _amount_extractor(_DELIVERY_FEE), False),
    _Extractor("convenience_fee", _amount_extractor(_CONVENIENCE_FEE), False),
    _Extractor("estimated_delivery_time", _extract_estimated_time, False),
    _Extractor("payment_label", _extract_payment_label, True),
    _Extractor("change_for", _amount_extractor(_CHANGE_FOR), False),
    _Extractor("total", _amount_extractor(_TOTAL, last=True), True),
)


def _normalize_text(raw: Any) -> str:
    if raw is None:
        return ""
    text = raw if isinstance(raw, str) else str(raw)
    text = _BR_TAG.sub("\n", text)
    return text.replace("\r\n", "\n").replace("\r", "\n")


def parse_order_details(raw: Any) -> ParsedOrderDetails:
    details = _normalize_text(raw)
    parsed = ParsedOrderDetails()

    for extractor in FIELD_EXTRACTORS:
        try:
            value = extractor.extract(details)
        except Exception as exc:
            parsed.warnings.append(f"{extractor.field}: extraction failed ({exc})")
            continue
        if value is None or value == []:
            if extractor.expected:
                parsed.warnings.append(f"{extractor.field}: not found")
            continue
        setattr(parsed, extractor.field, value)

    parsed.payment_method = classify_payment(parsed.payment_label)

    if "total" in {w.split(":", 1)[0] for w in parsed.warnings}:
        parsed.total = (
            parsed.items_total
            + (parsed.delivery_fee or Decimal("0"))
            + (parsed.convenience_fee or Decimal("0"))
        )
        parsed.total_is_computed = True

    return parsed


def parse_source_datetime(raw: str | None, *, tz: tzinfo, now: datetime | None = None) -> datetime:
    """Parse ``Data: 15/05/2025 - Hora: 23:23:34``; unparsable input yields ``now``."""

    match = _DATE_TIME.search(raw or "")
    if match:
        day, month, year, hours, minutes, seconds = (int(group) for group in match.groups())
        try:
            return datetime(year, month, day, hours, minutes, seconds, tzinfo=tz)
        except ValueError:
            pass
    return now or datetime.now(tz)


def build_order(source: SourceOrder, *, tz: tzinfo, now: datetime | None = None) -> Order:
    parsed = parse_order_details(source.detalhes)
    return Order(
        id=source.id,
        client_name=source.cliente,
        client_phone=parsed.client_phone,
        date_time=parse_source_datetime(source.dataHora, tz=tz, now=now),
        status=OrderStatus.PENDING,
        items=[
            OrderItem(
                id=f"{source.id}-item-{index}",
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                notes=item.notes,
            )
            for index, item in enumerate(parsed.items)
        ],
        delivery_address=parsed.address,
        payment_info=PaymentInfo(
            method=parsed.payment_method,
            total=parsed.total,
            change=parsed.change_for,
            paid=False,
        ),
        delivery_fee=parsed.delivery_fee,
        convenience_fee=parsed.convenience_fee,
        estimated_delivery_time=parsed.estimated_delivery_time,
        sent_to_saboritte=False,
        raw_details=source.detalhes,
    )
