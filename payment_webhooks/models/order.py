from enum import Enum
from typing import List, Optional
from sqlalchemy import JSON, BigInteger, String, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from payment_webhooks.db.base import Base
from .mixins.timestamp import TimestampMixin


class OrderStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class Order(Base, TimestampMixin):
    __tablename__ = "orders"
    order_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # minor currency units (cents, paise)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus), default=OrderStatus.CREATED, nullable=False)
    # id handed back by the gateway when the payment was created (pi_..., order_...)
    gateway_reference: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True, index=True)
    applied_event_ids: Mapped[List[str]] = mapped_column(
        JSON, default=list, nullable=False)
    version: Mapped[int] = mapped_column(default=0, nullable=False)
