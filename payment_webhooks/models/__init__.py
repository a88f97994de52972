

from .order import Order as Order, OrderStatus as OrderStatus
from .delivery_receipt import DeliveryReceipt as DeliveryReceipt, ReceiptOutcome as ReceiptOutcome
from .webhook_event import WebhookEvent as WebhookEvent

__all__ = ["Order", "OrderStatus", "DeliveryReceipt", "ReceiptOutcome", "WebhookEvent"]
