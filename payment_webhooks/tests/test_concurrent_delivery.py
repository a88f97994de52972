import asyncio
from payment_webhooks.core.exceptions import InvalidTransitionError
from payment_webhooks.models import DeliveryReceipt, OrderStatus, ReceiptOutcome
from payment_webhooks.services.locks import KeyedLock
from payment_webhooks.services.webhook_processor import WebhookProcessor


async def test_concurrent_redeliveries_apply_once(processor, create_order, load_order, stripe_delivery):
    """Same event delivered 10 times at once - the order changes exactly once."""
    num_of_concurrent_deliveries = 10
    await create_order("ORD123", status=OrderStatus.PENDING)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")

    coros = [processor.handle_delivery("stripe", body, headers) for _ in range(num_of_concurrent_deliveries)]
    results = await asyncio.gather(*coros, return_exceptions=True)

    errors = [r for r in results if isinstance(r, Exception)]
    assert errors == []
    first = [r for r in results if not r.duplicate]
    duplicates = [r for r in results if r.duplicate]
    assert len(first) == 1
    assert len(duplicates) == num_of_concurrent_deliveries - 1
    assert all(r.outcome == ReceiptOutcome.ACCEPTED for r in results)

    order = await load_order("ORD123")
    assert order.status == OrderStatus.PAID
    assert order.applied_event_ids == ["evt_1"]
    assert order.version == 1


async def test_succeeded_and_failed_race(processor, create_order, load_order, db_session_factory,
                                         stripe_delivery):
    """Two different outcomes for one pending order - exactly one wins."""
    await create_order("ORD123", status=OrderStatus.PENDING)
    succeeded = stripe_delivery("evt_ok", "payment_intent.succeeded")
    failed = stripe_delivery("evt_fail", "payment_intent.payment_failed")

    results = await asyncio.gather(
        processor.handle_delivery("stripe", *succeeded),
        processor.handle_delivery("stripe", *failed),
        return_exceptions=True,
    )

    accepted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, InvalidTransitionError)]
    assert len(accepted) == 1
    assert len(rejected) == 1

    order = await load_order("ORD123")
    assert order.status in (OrderStatus.PAID, OrderStatus.FAILED)
    assert order.applied_event_ids == [accepted[0].event_id]
    assert order.version == 1

    async with db_session_factory() as session:
        outcomes = {
            event_id: (await session.get(DeliveryReceipt, event_id)).outcome
            for event_id in ("evt_ok", "evt_fail")
        }
    assert sorted(outcomes.values()) == [ReceiptOutcome.ACCEPTED, ReceiptOutcome.REJECTED]


async def test_concurrent_redeliveries_of_rejected_event(processor, create_order, load_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.CREATED)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")

    results = await asyncio.gather(
        *[processor.handle_delivery("stripe", body, headers) for _ in range(5)],
        return_exceptions=True,
    )

    raised = [r for r in results if isinstance(r, Exception)]
    duplicates = [r for r in results if not isinstance(r, Exception)]
    assert len(raised) == 1
    assert isinstance(raised[0], InvalidTransitionError)
    assert all(r.duplicate and r.outcome == ReceiptOutcome.REJECTED for r in duplicates)
    assert (await load_order("ORD123")).status == OrderStatus.CREATED



class RecordingLock(KeyedLock):
    def __init__(self):
        super().__init__()
        self.keys = []

    def hold(self, key):
        self.keys.append(key)
        return super().hold(key)


async def test_event_lock_matches_receipt_key(gateway_configs, db_session_factory, create_order,
                                              stripe_delivery, razorpay_delivery):
    """Receipts are keyed by event id alone, so the event lock must be too."""
    locks = RecordingLock()
    processor = WebhookProcessor(gateway_configs, db_session_factory, locks=locks, store_timeout=5.0)
    await create_order("ORD123", status=OrderStatus.PENDING)
    await create_order("ORD124", status=OrderStatus.PENDING, amount=150000, currency="INR")

    await processor.handle_delivery("stripe", *stripe_delivery("evt_shared", "payment_intent.succeeded"))
    result = await processor.handle_delivery("razorpay", *razorpay_delivery("evt_shared", "payment.captured"))

    assert locks.keys[0] == "event:evt_shared"
    assert locks.keys[2] == "event:evt_shared"
    assert result.duplicate is True
