from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from payment_webhooks.models.order import OrderStatus


class CreateOrderRequest(BaseModel):
    order_id: str = Field(min_length=1, max_length=64)
    amount: int = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    gateway_reference: Optional[str] = None


class AppliedEvent(BaseModel):
    event_id: str
    event_type: Optional[str] = None
    received_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    order_id: str
    amount: int
    currency: str
    status: OrderStatus
    gateway_reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderStatusResponse(BaseModel):
    order_id: str
    status: OrderStatus
    amount: int
    currency: str
    applied_events: List[AppliedEvent]
