import logging
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.core.exceptions import (AmountMismatchError, InvalidTransitionError,
                                              OrderNotFoundError, StoreUnavailableError)
from payment_webhooks.models.order import Order, OrderStatus
from payment_webhooks.schemas.webhook import ParsedEvent
from payment_webhooks.services.transitions import can_transition, target_status

logger = logging.getLogger(__name__)

# amount/currency must match the order when money is expected to arrive
AMOUNT_CHECKED_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID)


class OrderReconciler:
    """
    Applies a verified, non-duplicate event to its order.

    The only code path that changes Order.status. Must run inside the
    caller's transaction so the receipt commits together with the order.
    """

    def __init__(self, max_retries: int = 3):
        self.max_retries = max_retries

    async def find_order(self, db_session: AsyncSession, event: ParsedEvent):
        conditions = []
        if event.order_id:
            conditions.append(Order.order_id == event.order_id)
        if event.gateway_reference:
            conditions.append(Order.gateway_reference == event.gateway_reference)
        if not conditions:
            return None
        result = await db_session.execute(
            select(Order).where(or_(*conditions)).with_for_update())
        orders = result.scalars().all()
        # prefer our own id when both identifiers resolve
        for order in orders:
            if order.order_id == event.order_id:
                return order
        return orders[0] if orders else None

    def check_event(self, order: Order, event: ParsedEvent) -> OrderStatus:
        target = target_status(event.event_type)
        if not can_transition(order.status, target):
            raise InvalidTransitionError(order.order_id, order.status, target)
        if target in AMOUNT_CHECKED_STATUSES:
            if event.amount is not None and event.amount != order.amount:
                raise AmountMismatchError(order.order_id, f"{order.amount} {order.currency}",
                                          f"{event.amount} {event.currency or order.currency}")
            if event.currency is not None and event.currency != order.currency:
                raise AmountMismatchError(order.order_id, order.currency, event.currency)
        return target

    async def apply(self, db_session: AsyncSession, event: ParsedEvent) -> Order:
        for attempt in range(self.max_retries):
            order = await self.find_order(db_session, event)
            if order is None:
                raise OrderNotFoundError(event.order_ref)
            target = self.check_event(order, event)

            current_version = order.version
            update_result = await db_session.execute(
                update(Order)
                .where(Order.order_id == order.order_id)
                .where(Order.status == order.status)
                .where(Order.version == current_version)
                .values(
                    status=target,
                    version=current_version + 1,
                    applied_event_ids=[*order.applied_event_ids, event.event_id],
                )
                .execution_options(synchronize_session=False))
            if update_result.rowcount == 1:
                await db_session.refresh(order)
                logger.info(
                    f"Order {order.order_id} moved to {target.value} via {event.gateway} event {event.event_id}")
                return order

            # Version conflict -- someone else updated first
            # Expire the cached object so next read gets fresh data
            db_session.expire(order)
            logger.info(f"Order {order.order_id} changed concurrently, retry {attempt + 1}")

        raise StoreUnavailableError(f"Too much contention on order {event.order_ref}, retry later")
