"""
Send a signed webhook delivery to a running instance.

    python -m payment_webhooks.scripts.send_test_webhook stripe payment_intent.succeeded ORD123
    python -m payment_webhooks.scripts.send_test_webhook razorpay payment.captured ORD124 --event-id evt_rzp_1
"""
import argparse
import json
import time
import uuid
import httpx
from payment_webhooks.core.config import settings
from payment_webhooks.services.signature import sign_payload


def build_stripe_event(event_id: str, event_type: str, order_id: str, amount: int, currency: str) -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "data": {
            "object": {
                "id": f"pi_{uuid.uuid4().hex[:14]}",
                "object": "payment_intent",
                "amount": amount,
                "currency": currency.lower(),
                "metadata": {"order_id": order_id},
            }
        },
    }


def build_razorpay_event(event_type: str, order_id: str, amount: int, currency: str) -> dict:
    entity_name = event_type.split(".")[0]
    return {
        "entity": "event",
        "event": event_type,
        "created_at": int(time.time()),
        "payload": {
            entity_name: {
                "entity": {
                    "id": f"{entity_name[:4]}_{uuid.uuid4().hex[:14]}",
                    "entity": entity_name,
                    "amount": amount,
                    "currency": currency.upper(),
                    "notes": {"order_id": order_id},
                }
            }
        },
    }


def main():
    parser = argparse.ArgumentParser(description="Send a signed test webhook")
    parser.add_argument("gateway", choices=["stripe", "razorpay"])
    parser.add_argument("event_type")
    parser.add_argument("order_id")
    parser.add_argument("--event-id", default=None)
    parser.add_argument("--amount", type=int, default=4999)
    parser.add_argument("--currency", default="USD")
    parser.add_argument("--url", default="http://127.0.0.1:8000/api/v1/webhooks")
    args = parser.parse_args()

    config = settings.gateway_configs()[args.gateway]
    event_id = args.event_id or f"evt_{uuid.uuid4().hex[:16]}"
    headers = {"Content-Type": "application/json"}
    if args.gateway == "stripe":
        payload = build_stripe_event(event_id, args.event_type, args.order_id, args.amount, args.currency)
        data = json.dumps(payload).encode("utf-8")
        headers["Stripe-Signature"] = sign_payload("stripe", config.shared_secret, data)
    else:
        payload = build_razorpay_event(args.event_type, args.order_id, args.amount, args.currency)
        data = json.dumps(payload).encode("utf-8")
        headers["X-Razorpay-Signature"] = sign_payload("razorpay", config.shared_secret, data)
        headers["X-Razorpay-Event-Id"] = event_id

    resp = httpx.post(f"{args.url}/{args.gateway}", content=data, headers=headers, timeout=20)
    print("Status:", resp.status_code)
    print("Response:", resp.json())


if __name__ == "__main__":
    main()
