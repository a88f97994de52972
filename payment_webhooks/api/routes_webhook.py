from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from payment_webhooks.api.dependencies import get_webhook_processor
from payment_webhooks.core.exceptions import ReceiptNotFoundError
from payment_webhooks.db.core import get_db_session
from payment_webhooks.schemas.webhook import DeliveryResponse, ReceiptResponse
from payment_webhooks.services.receipt_tracker import DeliveryReceiptTracker
from payment_webhooks.services.webhook_processor import WebhookProcessor

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/{gateway}", response_model=DeliveryResponse)
async def receive_webhook(gateway: str,
                          request: Request,
                          processor: WebhookProcessor = Depends(get_webhook_processor)):
    """
    Handle payment gateway webhook callbacks.

    Returns 200 for accepted, ignored and duplicate deliveries. Errors are
    rendered by the WebhookError handler: 400 bad signature or payload,
    404 unknown gateway or order, 409 rejected transition, 500 store failure
    (the gateway retries those).
    """
    # signature covers the exact bytes, never re-serialize
    body = await request.body()
    result = await processor.handle_delivery(gateway, body, request.headers)
    return result.to_response()


@router.get("/receipts/{event_id}", response_model=ReceiptResponse)
async def get_receipt(event_id: str, db_session: AsyncSession = Depends(get_db_session)):
    receipt = await DeliveryReceiptTracker().get_receipt(db_session, event_id)
    if receipt is None:
        raise ReceiptNotFoundError(event_id)
    return receipt
