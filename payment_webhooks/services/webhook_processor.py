"""
Webhook delivery pipeline.

    raw body -> signature check -> parse -> per-event lock -> per-order lock
             -> [ receipt lookup -> reconcile -> record receipt ] (one transaction)

Gateways deliver at least once, so the same event id can arrive again, even
while an earlier delivery is still in flight. Exactly-once application rests on:
1. The per-event and per-order locks serializing deliveries in this process
   (Redis-backed locks extend that across processes)
2. The receipt lookup inside the transaction, before anything is mutated
3. The primary key on delivery_receipts catching anything that slips past 1 and 2
4. Order update, event row and receipt committing in a single transaction
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from payment_webhooks.core.config import GatewayConfig
from payment_webhooks.core.exceptions import (ReconciliationError, StoreUnavailableError,
                                              UnknownGatewayError)
from payment_webhooks.models.delivery_receipt import DeliveryReceipt, ReceiptOutcome
from payment_webhooks.models.order import Order, OrderStatus
from payment_webhooks.schemas.webhook import DeliveryResponse, ParsedEvent
from payment_webhooks.services.deduplicator import EventDeduplicator
from payment_webhooks.services.event_parser import parse_event
from payment_webhooks.services.locks import KeyedLock
from payment_webhooks.services.receipt_tracker import DeliveryReceiptTracker
from payment_webhooks.services.reconciler import OrderReconciler
from payment_webhooks.services.signature import verify_signature

logger = logging.getLogger(__name__)


class ReceiptAlreadyCommitted(Exception):
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Receipt for {event_id} committed by another delivery")


@dataclass
class DeliveryResult:
    event_id: str
    outcome: ReceiptOutcome
    status_code: int
    duplicate: bool = False
    order_id: Optional[str] = None
    order_status: Optional[OrderStatus] = None
    detail: Optional[str] = None

    @classmethod
    def from_receipt(cls, receipt: DeliveryReceipt, duplicate: bool = False,
                     order_status: Optional[OrderStatus] = None) -> "DeliveryResult":
        return cls(
            event_id=receipt.event_id,
            outcome=receipt.outcome,
            status_code=receipt.status_code,
            duplicate=duplicate,
            order_id=receipt.order_id,
            order_status=order_status,
            detail=receipt.detail,
        )

    def to_response(self) -> DeliveryResponse:
        if self.duplicate:
            status = "already_processed"
        elif self.outcome == ReceiptOutcome.IGNORED:
            status = "ignored"
        else:
            status = "processed"
        return DeliveryResponse(
            status=status,
            event_id=self.event_id,
            outcome=self.outcome,
            status_code=self.status_code,
            order_id=self.order_id,
            order_status=self.order_status,
            detail=self.detail,
        )


class WebhookProcessor:
    def __init__(self,
                 gateway_configs: Dict[str, GatewayConfig],
                 session_factory: async_sessionmaker,
                 locks=None,
                 store_timeout: float = 10.0,
                 max_retries: int = 3):
        self.gateway_configs = gateway_configs
        self.session_factory = session_factory
        self.locks = locks if locks is not None else KeyedLock()
        self.store_timeout = store_timeout
        self.deduplicator = EventDeduplicator()
        self.reconciler = OrderReconciler(max_retries=max_retries)
        self.tracker = DeliveryReceiptTracker()

    async def handle_delivery(self, gateway: str, body: bytes, headers: Mapping[str, str],
                              now: Optional[float] = None) -> DeliveryResult:
        config = self.gateway_configs.get(gateway)
        if config is None:
            raise UnknownGatewayError(gateway)

        verify_signature(config, body, headers, now=now)
        event = parse_event(gateway, body, headers)
        logger.info(f"Received {gateway} webhook: {event.vendor_type} (id: {event.event_id})")

        try:
            return await asyncio.wait_for(self._process(event), timeout=self.store_timeout)
        except asyncio.TimeoutError:
            # wait_for cancelled the transaction, nothing was committed
            logger.error(f"Timed out after {self.store_timeout}s processing webhook {event.event_id}")
            raise StoreUnavailableError(f"Timed out processing event {event.event_id}")

    async def _process(self, event: ParsedEvent) -> DeliveryResult:
        # event lock is keyed like the receipt primary key; always event lock first, then order lock
        async with self.locks.hold(f"event:{event.event_id}"):
            if event.order_ref is None:
                return await self._commit(event)
            async with self.locks.hold(f"order:{event.order_ref}"):
                return await self._commit(event)

    async def _commit(self, event: ParsedEvent) -> DeliveryResult:
        try:
            async with self.session_factory() as db_session:
                result, rejection = await self._apply(db_session, event)
        except (IntegrityError, ReceiptAlreadyCommitted):
            # another worker committed a receipt for this event id first
            logger.info(f"Webhook {event.event_id} committed concurrently, returning stored receipt")
            return await self._stored_result(event.event_id)
        except DBAPIError as e:
            logger.error(f"Store failure processing webhook {event.event_id}: {e}", exc_info=True)
            raise StoreUnavailableError()

        if rejection is not None:
            raise rejection
        return result

    async def _apply(self, db_session: AsyncSession,
                     event: ParsedEvent) -> Tuple[Optional[DeliveryResult], Optional[ReconciliationError]]:
        async with db_session.begin():
            receipt = await self.deduplicator.find_receipt(db_session, event.event_id)
            if receipt is not None:
                return await self._duplicate_result(db_session, receipt), None

            if event.event_type is None:
                logger.info(f"Unhandled event type: {event.vendor_type}")
                receipt, created = await self.tracker.record(
                    db_session, event, ReceiptOutcome.IGNORED,
                    detail=f"unhandled event type {event.vendor_type}")
                return DeliveryResult.from_receipt(receipt, duplicate=not created), None

            try:
                order = await self.reconciler.apply(db_session, event)
            except ReconciliationError as e:
                # reconciler raises before writing, so the rejection can commit alone
                receipt, created = await self.tracker.record(
                    db_session, event, ReceiptOutcome.REJECTED,
                    status_code=e.status_code, detail=e.message, order_id=e.order_id)
                if not created:
                    # a concurrent delivery of this event committed while we read the order
                    return await self._duplicate_result(db_session, receipt), None
                logger.warning(f"Rejected webhook {event.event_id}: {e.message}")
                return None, e

            receipt, created = await self.tracker.record(
                db_session, event, ReceiptOutcome.ACCEPTED, order_id=order.order_id)
            if not created:
                # roll the order change back, the stored receipt wins
                raise ReceiptAlreadyCommitted(event.event_id)
            return DeliveryResult.from_receipt(receipt, order_status=order.status), None

    async def _duplicate_result(self, db_session: AsyncSession, receipt: DeliveryReceipt) -> DeliveryResult:
        order_status = None
        if receipt.order_id:
            order = await db_session.get(Order, receipt.order_id)
            if order is not None:
                order_status = order.status
        return DeliveryResult.from_receipt(receipt, duplicate=True, order_status=order_status)

    async def _stored_result(self, event_id: str) -> DeliveryResult:
        try:
            async with self.session_factory() as db_session:
                receipt = await self.tracker.get_receipt(db_session, event_id)
                if receipt is None:
                    raise StoreUnavailableError(f"Receipt for {event_id} not readable yet")
                return await self._duplicate_result(db_session, receipt)
        except DBAPIError as e:
            logger.error(f"Store failure reading receipt {event_id}: {e}", exc_info=True)
            raise StoreUnavailableError()
