import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from payment_webhooks.core.config import settings
from payment_webhooks.core.exceptions import WebhookError
from payment_webhooks.db import core as db_core
from payment_webhooks.redis import close_redis, get_redis
from payment_webhooks.services.locks import KeyedLock, RedisLock
from payment_webhooks.services.webhook_processor import WebhookProcessor
from payment_webhooks.workers.receipt_recovery import ReceiptRecoveryWorker
import payment_webhooks.api.routes_health as routes_health
import payment_webhooks.api.routes_order as routes_order
import payment_webhooks.api.routes_webhook as routes_webhook

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ENV == "development":
        await db_core.init_db()
    if settings.RUN_RECEIPT_RECOVERY:
        await ReceiptRecoveryWorker(db_core.async_session_factory).run()
    logger.info(f"{settings.APP_NAME} started ({settings.ENV})")
    yield
    await close_redis()
    await db_core.engine.dispose()
    logger.info(f"{settings.APP_NAME} stopped")


def build_webhook_processor() -> WebhookProcessor:
    redis = get_redis()
    if redis is not None:
        locks = RedisLock(redis, ttl=settings.LOCK_TTL_SECONDS)
    else:
        locks = KeyedLock()
    return WebhookProcessor(
        gateway_configs=settings.gateway_configs(),
        session_factory=db_core.async_session_factory,
        locks=locks,
        store_timeout=settings.STORE_TIMEOUT_SECONDS,
        max_retries=settings.RECONCILE_MAX_RETRIES,
    )


def create_app(webhook_processor: Optional[WebhookProcessor] = None) -> FastAPI:
    logging.basicConfig(level=settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        description="Payment gateway webhook ingestion and order reconciliation",
        lifespan=lifespan
    )
    app.state.webhook_processor = webhook_processor or build_webhook_processor()

    app.include_router(
        routes_health.router,
        prefix="/api/v1"
    )

    app.include_router(
        routes_webhook.router,
        prefix="/api/v1"
    )

    app.include_router(
        routes_order.router,
        prefix="/api/v1"
    )

    @app.exception_handler(WebhookError)
    async def webhook_error_handler(request: Request, ex: WebhookError):
        if ex.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {ex.message}")
        return JSONResponse(status_code=ex.status_code, content={"error": ex.message})

    return app


app = create_app()
