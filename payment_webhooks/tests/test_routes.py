import time
import pytest
from payment_webhooks.models import OrderStatus


async def test_health(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_webhook_processed_then_already_processed(client, create_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.PENDING)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "processed"
    assert response.json()["order_status"] == "paid"

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "already_processed"
    assert response.json()["outcome"] == "accepted"


async def test_webhook_bad_signature(client, create_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.PENDING)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded", secret=b"wrong")

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "Signature mismatch"}


async def test_webhook_missing_signature(client):
    response = await client.post("/api/v1/webhooks/stripe", content=b"{}")
    assert response.status_code == 400


async def test_webhook_non_ascii_signature_is_rejected(client):
    # latin-1 bytes reach the app as a non-ASCII str header
    header = f"t={int(time.time())},v1=éé".encode("latin-1")

    response = await client.post("/api/v1/webhooks/stripe", content=b'{"id": "evt_1"}',
                                 headers={"Stripe-Signature": header})

    assert response.status_code == 400
    assert response.json() == {"error": "Signature mismatch"}


async def test_webhook_malformed_but_signed_payload_is_rejected(client, stripe_delivery):
    body, headers = stripe_delivery("evt_y", "payment_intent.succeeded", obj={"metadata": "ORD123"})

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 400


async def test_webhook_unknown_gateway(client):
    response = await client.post("/api/v1/webhooks/paypal", content=b"{}")
    assert response.status_code == 404


async def test_webhook_unknown_order(client, stripe_delivery):
    body, headers = stripe_delivery("evt_3", "payment_intent.succeeded", order_id="ORD999")

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 404
    assert response.json() == {"error": "Order ORD999 not found"}


async def test_webhook_rejected_transition(client, create_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.CREATED)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
    assert response.status_code == 409

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "already_processed"
    assert response.json()["outcome"] == "rejected"
    assert response.json()["status_code"] == 409


async def test_webhook_store_failure_returns_500(client, processor, stripe_delivery, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def broken_factory():
        raise OperationalError("BEGIN", {}, Exception("database is down"))

    monkeypatch.setattr(processor, "session_factory", broken_factory)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")

    response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

    assert response.status_code == 500
    assert "error" in response.json()


async def test_razorpay_webhook(client, create_order, razorpay_delivery):
    await create_order("ORD124", status=OrderStatus.PENDING, amount=150000, currency="INR")
    body, headers = razorpay_delivery("evt_rzp_1", "payment.captured")

    response = await client.post("/api/v1/webhooks/razorpay", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["order_status"] == "paid"


async def test_create_and_get_order(client):
    response = await client.post("/api/v1/orders/", json={
        "order_id": "ORD500", "amount": 2500, "currency": "usd", "gateway_reference": "pi_500"})
    assert response.status_code == 201
    assert response.json()["status"] == "created"
    assert response.json()["currency"] == "USD"

    response = await client.post("/api/v1/orders/", json={"order_id": "ORD500", "amount": 2500, "currency": "USD"})
    assert response.status_code == 409


@pytest.mark.parametrize("payload", [
    {"order_id": "ORD501", "amount": 0, "currency": "USD"},
    {"order_id": "ORD501", "amount": 100, "currency": "DOLLARS"},
])
async def test_create_order_validation(client, payload):
    response = await client.post("/api/v1/orders/", json=payload)
    assert response.status_code == 422


async def test_order_status_lists_applied_events(client, create_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.CREATED)
    for event_id, event_type in (("evt_1", "payment_intent.created"), ("evt_2", "payment_intent.succeeded")):
        body, headers = stripe_delivery(event_id, event_type)
        response = await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)
        assert response.status_code == 200

    response = await client.get("/api/v1/orders/ORD123")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "paid"
    assert [e["event_id"] for e in data["applied_events"]] == ["evt_1", "evt_2"]
    assert [e["event_type"] for e in data["applied_events"]] == ["payment.pending", "payment.succeeded"]


async def test_order_status_not_found(client):
    response = await client.get("/api/v1/orders/ORD404")
    assert response.status_code == 404


async def test_receipt_lookup(client, create_order, stripe_delivery):
    await create_order("ORD123", status=OrderStatus.PENDING)
    body, headers = stripe_delivery("evt_1", "payment_intent.succeeded")
    await client.post("/api/v1/webhooks/stripe", content=body, headers=headers)

    response = await client.get("/api/v1/webhooks/receipts/evt_1")
    assert response.status_code == 200
    assert response.json()["outcome"] == "accepted"
    assert response.json()["order_id"] == "ORD123"

    response = await client.get("/api/v1/webhooks/receipts/evt_missing")
    assert response.status_code == 404
