import logging
from typing import Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.models.delivery_receipt import DeliveryReceipt, ReceiptOutcome
from payment_webhooks.models.webhook_event import WebhookEvent
from payment_webhooks.schemas.webhook import ParsedEvent

logger = logging.getLogger(__name__)


class DeliveryReceiptTracker:
    async def get_receipt(self, db_session: AsyncSession, event_id: str) -> Optional[DeliveryReceipt]:
        return await db_session.get(DeliveryReceipt, event_id)

    async def record(self, db_session: AsyncSession, event: ParsedEvent, outcome: ReceiptOutcome,
                     status_code: int = 200, detail: Optional[str] = None,
                     order_id: Optional[str] = None) -> Tuple[DeliveryReceipt, bool]:
        """
        Record the outcome for event.event_id together with the event itself.

        Returns (receipt, created). Recording an id that already has a receipt
        is a no-op returning the stored receipt with created=False.

        Flushes but does not commit: the caller's transaction decides, so the
        receipt lands atomically with the order change.
        """
        existing = await self.get_receipt(db_session, event.event_id)
        if existing is not None:
            return existing, False

        receipt = DeliveryReceipt(
            event_id=event.event_id,
            gateway=event.gateway,
            event_type=event.type_label,
            order_id=order_id or event.order_id,
            outcome=outcome,
            status_code=status_code,
            detail=detail,
        )
        db_session.add(receipt)
        db_session.add(WebhookEvent(
            event_id=event.event_id,
            gateway=event.gateway,
            vendor_type=event.vendor_type,
            event_type=event.event_type.value if event.event_type else None,
            order_id=order_id or event.order_id,
            payload=event.raw_body.decode("utf-8", errors="replace"),
            event_created_at=event.created_at,
        ))
        await db_session.flush()
        logger.info(f"Recorded receipt for {event.event_id}: {outcome.value}")
        return receipt, True

    async def record_recovered(self, db_session: AsyncSession, event_id: str, order_id: str,
                               gateway: str = "unknown", event_type: str = "unknown") -> DeliveryReceipt:
        """Receipt re-derived from an order that already lists event_id as applied."""
        receipt = DeliveryReceipt(
            event_id=event_id,
            gateway=gateway,
            event_type=event_type,
            order_id=order_id,
            outcome=ReceiptOutcome.ACCEPTED,
            status_code=200,
            detail="recovered from order state",
        )
        db_session.add(receipt)
        await db_session.flush()
        return receipt
