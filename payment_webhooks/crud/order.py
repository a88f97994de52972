import logging
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.core.exceptions import OrderAlreadyExistsError, OrderNotFoundError, WebhookError
from payment_webhooks.models.order import Order, OrderStatus
from payment_webhooks.models.webhook_event import WebhookEvent
from payment_webhooks.schemas.order import AppliedEvent, CreateOrderRequest, OrderStatusResponse


class CRUDOrder:
    async def get_order(self, db_session: AsyncSession, order_id: str) -> Order:
        order = await db_session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def create_order(self, db_session: AsyncSession, data: CreateOrderRequest) -> Order:
        """
        Register an order handed over by checkout. It always starts as
        created; only webhook reconciliation moves it further.
        """
        try:
            order = Order(
                order_id=data.order_id,
                amount=data.amount,
                currency=data.currency.upper(),
                gateway_reference=data.gateway_reference,
                status=OrderStatus.CREATED,
                applied_event_ids=[],
            )
            db_session.add(order)
            await db_session.commit()
            await db_session.refresh(order)
            return order
        except IntegrityError:
            await db_session.rollback()
            raise OrderAlreadyExistsError(data.order_id)
        except Exception as e:
            logging.error(f"Failed to create order: {e}", exc_info=True)
            await db_session.rollback()
            raise WebhookError("Failed to create order", status_code=500)

    async def get_order_status(self, db_session: AsyncSession, order_id: str) -> OrderStatusResponse:
        order = await self.get_order(db_session, order_id)
        result = await db_session.execute(
            select(WebhookEvent).where(WebhookEvent.event_id.in_(order.applied_event_ids)))
        events = {event.event_id: event for event in result.scalars().all()}

        applied_events = []
        # keep the order in which transitions were applied
        for event_id in order.applied_event_ids:
            event = events.get(event_id)
            applied_events.append(AppliedEvent(
                event_id=event_id,
                event_type=event.event_type if event else None,
                received_at=event.received_at if event else None,
            ))
        return OrderStatusResponse(
            order_id=order.order_id,
            status=order.status,
            amount=order.amount,
            currency=order.currency,
            applied_events=applied_events,
        )


crud_order = CRUDOrder()
