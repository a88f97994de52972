import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.models.delivery_receipt import DeliveryReceipt

logger = logging.getLogger(__name__)


class EventDeduplicator:
    """
    Short-circuits deliveries whose event id already has a receipt.

    The lookup alone is not enough under concurrency: callers hold the
    per-event lock and the receipt primary key rejects a second insert.
    """

    async def find_receipt(self, db_session: AsyncSession, event_id: str) -> Optional[DeliveryReceipt]:
        result = await db_session.execute(
            select(DeliveryReceipt).where(DeliveryReceipt.event_id == event_id))
        receipt = result.scalar_one_or_none()
        if receipt is not None:
            logger.info(f"Webhook {event_id} already processed ({receipt.outcome.value}), skipping")
        return receipt
