import json
import time
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from payment_webhooks.core.config import GatewayConfig
from payment_webhooks.db.base import Base
from payment_webhooks.models import Order, OrderStatus
from payment_webhooks.services.signature import sign_payload
from payment_webhooks.services.webhook_processor import WebhookProcessor

STRIPE_SECRET = b"whsec_test_secret"
RAZORPAY_SECRET = b"rzp_test_secret"


@pytest.fixture
async def db_engine(tmp_path):
    """Fresh SQLite file database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'webhooks_test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine):
    """Factory to create multiple sessions for concurrent tests."""
    return async_sessionmaker(
        bind=db_engine,
        expire_on_commit=False,
        autoflush=False
    )


@pytest.fixture
def gateway_configs():
    return {
        "stripe": GatewayConfig(gateway="stripe", shared_secret=STRIPE_SECRET, allowed_skew_seconds=300),
        "razorpay": GatewayConfig(gateway="razorpay", shared_secret=RAZORPAY_SECRET, allowed_skew_seconds=300),
    }


@pytest.fixture
def processor(gateway_configs, db_session_factory):
    return WebhookProcessor(gateway_configs, db_session_factory, store_timeout=5.0)


@pytest.fixture
def create_order(db_session_factory):
    async def _create(order_id="ORD123", status=OrderStatus.PENDING, amount=4999, currency="USD",
                      gateway_reference=None, applied_event_ids=None):
        async with db_session_factory() as session:
            session.add(Order(
                order_id=order_id,
                amount=amount,
                currency=currency,
                status=status,
                gateway_reference=gateway_reference,
                applied_event_ids=applied_event_ids or [],
            ))
            await session.commit()
    return _create


@pytest.fixture
def load_order(db_session_factory):
    async def _load(order_id="ORD123"):
        async with db_session_factory() as session:
            return await session.get(Order, order_id)
    return _load


@pytest.fixture
def stripe_delivery():
    """Build a signed Stripe delivery: (body, headers)."""
    def _build(event_id, event_type, order_id="ORD123", amount=4999, currency="usd",
               secret=STRIPE_SECRET, timestamp=None, obj=None):
        data_object = {
            "id": f"pi_{event_id}",
            "object": "payment_intent",
            "amount": amount,
            "currency": currency,
            "metadata": {"order_id": order_id} if order_id else {},
        }
        if obj is not None:
            data_object = obj
        body = json.dumps({
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "data": {"object": data_object},
        }).encode()
        headers = {"Stripe-Signature": sign_payload("stripe", secret, body, timestamp=timestamp)}
        return body, headers
    return _build


@pytest.fixture
def razorpay_delivery():
    """Build a signed Razorpay delivery: (body, headers)."""
    def _build(event_id, event_type, order_id="ORD124", amount=150000, currency="INR",
               secret=RAZORPAY_SECRET, created_at=None):
        payment = {
            "id": f"pay_{event_id}",
            "entity": "payment",
            "amount": amount,
            "currency": currency,
            "order_id": f"order_{order_id}",
            "notes": {"order_id": order_id},
        }
        if event_type.startswith("refund."):
            # refunds point at their payment only, Razorpay nests the payment alongside
            payload = {
                "refund": {"entity": {
                    "id": f"rfnd_{event_id}",
                    "entity": "refund",
                    "amount": amount,
                    "currency": currency,
                    "payment_id": payment["id"],
                    "notes": [],
                }},
                "payment": {"entity": payment},
            }
        else:
            payload = {"payment": {"entity": payment}}
        body = json.dumps({
            "entity": "event",
            "event": event_type,
            "created_at": int(time.time()) if created_at is None else created_at,
            "payload": payload,
        }).encode()
        headers = {
            "X-Razorpay-Signature": sign_payload("razorpay", secret, body),
            "X-Razorpay-Event-Id": event_id,
        }
        return body, headers
    return _build


@pytest.fixture
async def client(processor, db_session_factory):
    from payment_webhooks.app import create_app
    from payment_webhooks.db.core import get_db_session

    app = create_app(webhook_processor=processor)

    async def override_get_db_session():
        async with db_session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_get_db_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
