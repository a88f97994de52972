from fastapi import Request
from payment_webhooks.services.webhook_processor import WebhookProcessor


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor
