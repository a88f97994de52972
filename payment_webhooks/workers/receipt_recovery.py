import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from payment_webhooks.models.order import Order, OrderStatus
from payment_webhooks.models.webhook_event import WebhookEvent
from payment_webhooks.services.receipt_tracker import DeliveryReceiptTracker

logger = logging.getLogger(__name__)


class ReceiptRecoveryWorker:
    """
    Re-derives missing receipts from order state.

    Normal deliveries commit the order change and the receipt together, so
    this only finds gaps left by data written outside the pipeline (imports,
    manual fixes, older deployments). An event id listed in an order's
    applied events was applied, so its receipt is accepted.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.tracker = DeliveryReceiptTracker()

    async def run(self) -> int:
        recovered = 0
        async with self.session_factory() as db_session:
            async with db_session.begin():
                result = await db_session.execute(
                    select(Order).where(Order.status != OrderStatus.CREATED))
                for order in result.scalars().all():
                    for event_id in order.applied_event_ids:
                        if await self.tracker.get_receipt(db_session, event_id) is not None:
                            continue
                        event = await db_session.get(WebhookEvent, event_id)
                        await self.tracker.record_recovered(
                            db_session,
                            event_id=event_id,
                            order_id=order.order_id,
                            gateway=event.gateway if event else "unknown",
                            event_type=(event.event_type or event.vendor_type) if event else "unknown",
                        )
                        recovered += 1
        if recovered:
            logger.warning(f"Recovered {recovered} missing delivery receipts from order state")
        return recovered
