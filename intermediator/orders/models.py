from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

STORAGE_KEY_ORDERS = "intermediator_pedidos"


class OrderStatus(str, Enum):
    PENDING = "pending"  # received from Plus, not yet sent
    PROCESSING = "processing"  # accepted by Saboritte
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CASH = "cash"
    PIX = "pix"
    OTHER = "other"


class _OrderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", use_enum_values=False)


class OrderItem(_OrderModel):
    id: str
    name: str
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)
    notes: Optional[str] = None
    extras: List[str] = Field(default_factory=list)
    variation: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class DeliveryAddress(_OrderModel):
    street: str = ""
    number: str = ""
    complement: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    reference: str = ""


class PaymentInfo(_OrderModel):
    method: PaymentMethod = PaymentMethod.OTHER
    total: Decimal = Decimal("0")
    change: Optional[Decimal] = None
    paid: bool = False


class Order(_OrderModel):
    id: str
    client_name: str = ""
    client_phone: Optional[str] = None
    date_time: datetime
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem] = Field(default_factory=list)
    delivery_address: DeliveryAddress = Field(default_factory=DeliveryAddress)
    payment_info: PaymentInfo = Field(default_factory=PaymentInfo)
    notes: Optional[str] = None
    delivery_fee: Optional[Decimal] = None
    convenience_fee: Optional[Decimal] = None
    estimated_delivery_time: Optional[str] = None
    sent_to_saboritte: bool = False
    saboritte_sent_at: Optional[datetime] = None
    raw_details: Optional[str] = None

    def mark_sent(self, sent_at: datetime) -> Order:
        return self.model_copy(
            update={
                "status": OrderStatus.PROCESSING,
                "sent_to_saboritte": True,
                "saboritte_sent_at": sent_at,
            }
        )
