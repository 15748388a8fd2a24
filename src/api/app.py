"""FastAPI application exposing the webhook trigger endpoint."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from src.audit.logger import AuditLogger
from src.config import Settings, configure_logging
from src.delivery.formatter import MessageFormatter
from src.delivery.models import DeliveryRequest
from src.delivery.notifier import FailureNotifier
from src.delivery.pipeline import DeliveryPipeline
from src.storage.db import TelehookDB
from src.storage.logs import WebhookLogRepository
from src.storage.settings import SettingsRepository
from src.storage.stats import WebhookStatRecorder
from src.storage.webhooks import WebhookRepository
from src.telegram.client import TelegramClient

logger = logging.getLogger(__name__)


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    return create_app(Settings.from_env())


def build_pipeline(
    settings: Settings,
    db: TelehookDB,
    telegram: TelegramClient,
    audit_logger: AuditLogger | None = None,
) -> DeliveryPipeline:
    notifier = FailureNotifier(
        telegram, SettingsRepository(db).get_notification_settings, audit_logger,
    )
    return DeliveryPipeline(
        webhooks=WebhookRepository(db),
        logs=WebhookLogRepository(db),
        stats=WebhookStatRecorder(db),
        db=db,
        formatter=MessageFormatter(),
        telegram=telegram,
        notifier=notifier,
        audit_logger=audit_logger,
        enable_webhook_logging=settings.enable_webhook_logging,
        disabled_status_code=settings.disabled_status_code,
        log_disabled_requests=settings.log_disabled_requests,
    )


def create_app(
    settings: Settings,
    telegram_transport: httpx.AsyncBaseTransport | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the app with its database, Telegram client and delivery pipeline."""
    configure_logging(settings.log_level)

    db = TelehookDB(settings.db_path)
    if audit_logger is None and settings.audit_log_path:
        audit_logger = AuditLogger.from_env(settings.audit_log_path)
    telegram = TelegramClient(
        timeout=settings.telegram_timeout,
        api_base=settings.telegram_api_base,
        transport=telegram_transport,
    )
    pipeline = build_pipeline(settings, db, telegram, audit_logger)

    if settings.log_retention_days > 0:
        WebhookLogRepository(db).purge_older_than(settings.log_retention_days)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await pipeline.wait_for_notifications()
        db.close()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.db = db
    app.state.pipeline = pipeline

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/trigger/{public_id}")
    async def trigger(public_id: str, request: Request) -> Response:
        result = await pipeline.process(DeliveryRequest(
            public_id=public_id,
            body=await request.body(),
            method=request.method,
            url=str(request.url),
            headers=dict(request.headers),
            query_params=dict(request.query_params),
            client_ip=request.client.host if request.client else None,
        ))
        headers = {"X-Request-ID": result.request_id}
        if result.raw_body is not None:
            # Telegram's own JSON, passed through untouched.
            return Response(
                content=result.raw_body,
                status_code=result.status_code,
                media_type="application/json",
                headers=headers,
            )
        return JSONResponse(result.body or {}, status_code=result.status_code, headers=headers)

    logger.info("telehook app created (db=%s)", settings.db_path)
    return app
