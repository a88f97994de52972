from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from payment_webhooks.db.base import Base


class WebhookEvent(Base):
    """
    Verified gateway event as it was received. Immutable once stored.
    """
    __tablename__ = "webhook_events"
    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    gateway: Mapped[str] = mapped_column(String(32), nullable=False)
    vendor_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    event_created_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True),
                                                  default=lambda: datetime.now(timezone.utc),
                                                  nullable=False)
