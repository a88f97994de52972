from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlalchemy import DateTime, Integer, String, Text, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from payment_webhooks.db.base import Base


class ReceiptOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IGNORED = "ignored"


class DeliveryReceipt(Base):
    """
    One row per gateway event id. Written once, never updated.
    Later deliveries of the same event id are answered from this row.
    """
    __tablename__ = "delivery_receipts"
    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    gateway: Mapped[str] = mapped_column(String(32), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    order_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True)
    outcome: Mapped[ReceiptOutcome] = mapped_column(
        SAEnum(ReceiptOutcome), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True),
                                                   default=lambda: datetime.now(timezone.utc),
                                                   nullable=False)
