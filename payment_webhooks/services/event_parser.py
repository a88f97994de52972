import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional
from payment_webhooks.core.exceptions import PayloadInvalidError, UnknownGatewayError
from payment_webhooks.schemas.webhook import EventType, ParsedEvent

logger = logging.getLogger(__name__)


STRIPE_EVENT_TYPES = {
    "payment_intent.created": EventType.PAYMENT_PENDING,
    "payment_intent.processing": EventType.PAYMENT_PENDING,
    "checkout.session.async_payment_succeeded": EventType.PAYMENT_SUCCEEDED,
    "payment_intent.succeeded": EventType.PAYMENT_SUCCEEDED,
    "checkout.session.async_payment_failed": EventType.PAYMENT_FAILED,
    "payment_intent.payment_failed": EventType.PAYMENT_FAILED,
    "charge.refunded": EventType.REFUND_ISSUED,
}

RAZORPAY_EVENT_TYPES = {
    "payment.authorized": EventType.PAYMENT_PENDING,
    "payment.captured": EventType.PAYMENT_SUCCEEDED,
    "order.paid": EventType.CHECKOUT_COMPLETED,
    "payment.failed": EventType.PAYMENT_FAILED,
    "refund.processed": EventType.REFUND_ISSUED,
}


def _load(body: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise PayloadInvalidError("Invalid JSON")
    if not isinstance(data, dict):
        raise PayloadInvalidError("Event must be a JSON object")
    return data


def _object(value: Any, name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadInvalidError(f"{name} must be a JSON object")
    return value


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, int):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    return None


def _currency(value: Any) -> Optional[str]:
    return value.upper() if isinstance(value, str) else None


def _amount(value: Any) -> Optional[int]:
    return value if isinstance(value, int) else None


def parse_stripe_event(body: bytes, headers: Mapping[str, str]) -> ParsedEvent:
    event = _load(body)
    event_id = _text(event.get("id"))
    vendor_type = _text(event.get("type"))
    if not event_id or not vendor_type:
        raise PayloadInvalidError("Missing event id or type")

    data = _object(event.get("data"), "data")
    obj = _object(data.get("object"), "data.object")
    metadata = _object(obj.get("metadata"), "data.object.metadata")

    if vendor_type == "checkout.session.completed":
        if obj.get("payment_status") in ("paid", "no_payment_required"):
            event_type = EventType.CHECKOUT_COMPLETED
        else:
            event_type = EventType.PAYMENT_PENDING
    else:
        event_type = STRIPE_EVENT_TYPES.get(vendor_type)

    if obj.get("object") == "payment_intent":
        reference = _text(obj.get("id"))
    else:
        reference = _text(obj.get("payment_intent"))

    if vendor_type == "charge.refunded":
        amount = _amount(obj.get("amount_refunded"))
    elif "amount_total" in obj:
        amount = _amount(obj.get("amount_total"))
    else:
        amount = _amount(obj.get("amount"))

    return ParsedEvent(
        gateway="stripe",
        event_id=event_id,
        vendor_type=vendor_type,
        event_type=event_type,
        raw_body=body,
        order_id=_text(metadata.get("order_id")) or _text(obj.get("client_reference_id")),
        gateway_reference=reference,
        amount=amount,
        currency=_currency(obj.get("currency")),
        created_at=_timestamp(event.get("created")),
    )


def _razorpay_entity(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    wrapper = _object(payload.get(key), f"payload.{key}")
    return _object(wrapper.get("entity"), f"payload.{key}.entity")


def _razorpay_order_id(entity: Dict[str, Any]) -> Optional[str]:
    notes = entity.get("notes")
    # Razorpay sends empty notes as []
    if isinstance(notes, dict) and _text(notes.get("order_id")):
        return notes["order_id"]
    if entity.get("entity") == "order":
        return _text(entity.get("receipt"))
    return None


def _razorpay_reference(entity: Dict[str, Any]) -> Optional[str]:
    if entity.get("entity") == "order":
        return _text(entity.get("id"))
    return _text(entity.get("order_id"))


def parse_razorpay_event(body: bytes, headers: Mapping[str, str]) -> ParsedEvent:
    event = _load(body)
    event_id = headers.get("X-Razorpay-Event-Id") or headers.get("x-razorpay-event-id")
    vendor_type = _text(event.get("event"))
    if not event_id or not vendor_type:
        raise PayloadInvalidError("Missing event id or type")

    payload = _object(event.get("payload"), "payload")
    entities = [_razorpay_entity(payload, key) for key in ("refund", "payment", "order") if key in payload]
    # the first entity carries amount and currency: a refund event's refund, not its payment
    entity = entities[0] if entities else {}
    # refunds only point at their payment, the order lives on the payment entity
    order_id = next((found for found in map(_razorpay_order_id, entities) if found), None)
    reference = next((found for found in map(_razorpay_reference, entities) if found), None)

    return ParsedEvent(
        gateway="razorpay",
        event_id=event_id,
        vendor_type=vendor_type,
        event_type=RAZORPAY_EVENT_TYPES.get(vendor_type),
        raw_body=body,
        order_id=order_id,
        gateway_reference=reference,
        amount=_amount(entity.get("amount")),
        currency=_currency(entity.get("currency")),
        created_at=_timestamp(event.get("created_at")),
    )


PARSERS: Dict[str, Callable[[bytes, Mapping[str, str]], ParsedEvent]] = {
    "stripe": parse_stripe_event,
    "razorpay": parse_razorpay_event,
}


def parse_event(gateway: str, body: bytes, headers: Mapping[str, str]) -> ParsedEvent:
    parser = PARSERS.get(gateway)
    if parser is None:
        raise UnknownGatewayError(gateway)
    event = parser(body, headers)
    if event.event_type is not None and event.order_ref is None:
        raise PayloadInvalidError(f"Event {event.event_id} does not reference an order")
    return event
