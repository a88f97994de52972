from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel
from payment_webhooks.models.delivery_receipt import ReceiptOutcome
from payment_webhooks.models.order import OrderStatus


class EventType(str, Enum):
    PAYMENT_PENDING = "payment.pending"
    CHECKOUT_COMPLETED = "checkout.completed"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    REFUND_ISSUED = "refund.issued"


@dataclass(frozen=True)
class ParsedEvent:
    """Gateway event normalized after its signature has been verified."""
    gateway: str
    event_id: str
    vendor_type: str
    event_type: Optional[EventType]
    raw_body: bytes
    order_id: Optional[str] = None
    gateway_reference: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def order_ref(self) -> Optional[str]:
        return self.order_id or self.gateway_reference

    @property
    def type_label(self) -> str:
        return self.event_type.value if self.event_type else self.vendor_type


class DeliveryResponse(BaseModel):
    status: str
    event_id: str
    outcome: ReceiptOutcome
    status_code: int
    order_id: Optional[str] = None
    order_status: Optional[OrderStatus] = None
    detail: Optional[str] = None


class ReceiptResponse(BaseModel):
    event_id: str
    gateway: str
    event_type: str
    order_id: Optional[str] = None
    outcome: ReceiptOutcome
    status_code: int
    detail: Optional[str] = None
    processed_at: datetime

    class Config:
        from_attributes = True
