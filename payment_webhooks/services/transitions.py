from typing import Dict, FrozenSet
from payment_webhooks.models.order import OrderStatus
from payment_webhooks.schemas.webhook import EventType


# created -> pending -> {paid, failed}; paid -> refunded.
# failed and refunded are terminal, a new payment attempt is a new order.
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({OrderStatus.PENDING}),
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FAILED}),
    OrderStatus.PAID: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.FAILED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

EVENT_TARGET_STATUS: Dict[EventType, OrderStatus] = {
    EventType.PAYMENT_PENDING: OrderStatus.PENDING,
    EventType.CHECKOUT_COMPLETED: OrderStatus.PAID,
    EventType.PAYMENT_SUCCEEDED: OrderStatus.PAID,
    EventType.PAYMENT_FAILED: OrderStatus.FAILED,
    EventType.REFUND_ISSUED: OrderStatus.REFUNDED,
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def target_status(event_type: EventType) -> OrderStatus:
    return EVENT_TARGET_STATUS[event_type]
