import traceback


class WebhookError(Exception):
    def __init__(self, message: str, status_code: int = 400, stack_trace: bool = False):
        self.message = message
        self.status_code = status_code
        self.stack_trace = traceback.format_exc() if stack_trace else None
        super().__init__(self.message)


class SignatureInvalidError(WebhookError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status_code=400)


class PayloadInvalidError(WebhookError):
    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, status_code=400)


class UnknownGatewayError(WebhookError):
    def __init__(self, gateway: str):
        super().__init__(f"No webhook endpoint for gateway '{gateway}'", status_code=404)


class OrderNotFoundError(WebhookError):
    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order {order_ref} not found", status_code=404)


class OrderAlreadyExistsError(WebhookError):
    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} already exists", status_code=409)


class ReceiptNotFoundError(WebhookError):
    def __init__(self, event_id: str):
        super().__init__(f"No delivery receipt for event {event_id}", status_code=404)


class ReconciliationError(WebhookError):
    """Event is authentic but cannot be applied to the order. Not retryable."""

    def __init__(self, order_id: str, message: str):
        self.order_id = order_id
        super().__init__(message, status_code=409)


class InvalidTransitionError(ReconciliationError):
    def __init__(self, order_id: str, current, target):
        self.current = current
        self.target = target
        super().__init__(
            order_id, f"Order {order_id} cannot move from {current.value} to {target.value}")


class AmountMismatchError(ReconciliationError):
    def __init__(self, order_id: str, expected: str, received: str):
        super().__init__(
            order_id, f"Order {order_id} expects {expected}, event carries {received}")


class StoreUnavailableError(WebhookError):
    def __init__(self, message: str = "Store unavailable, retry later"):
        super().__init__(message, status_code=500, stack_trace=True)
