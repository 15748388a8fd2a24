"""Webhook delivery pipeline.

Runs one inbound trigger call through its stages using direct calls to the
collaborators:

1. Lookup the webhook by public id
2. Disabled check
3. Protection check (constant-time secret comparison)
4. Render the template and escape for the parse mode
5. Dispatch to Telegram (single attempt)
6. Persist the log row and stat counters in one transaction
7. Schedule a failure notification when rendering or delivery failed

Persistence and notification problems are logged and audited but never change
the response already computed for the caller.
"""

from __future__ import annotations

import asyncio
import hmac
import json
import logging
import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from src.delivery.models import DeliveryRequest, DeliveryResult, FailureKind
from src.models import AuditEvent, AuditEventType, RiskLevel, WebhookConfig, WebhookLog
from src.storage.stats import StatEvent
from src.telegram.client import OutcomeKind

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.delivery.formatter import MessageFormatter
    from src.delivery.notifier import FailureNotifier
    from src.storage.db import TelehookDB
    from src.storage.logs import WebhookLogRepository
    from src.storage.stats import WebhookStatRecorder
    from src.storage.webhooks import WebhookRepository
    from src.telegram.client import DeliveryOutcome, TelegramClient

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "x-api-key", "x-auth-token"})
SENSITIVE_QUERY_PARAMS = frozenset({"secret_key", "api_key", "token", "key", "password"})
REDACTED = "[REDACTED]"

_NOTIFY_TYPES = {
    OutcomeKind.API_ERROR: "Telegram API Error",
    OutcomeKind.NETWORK: "Telegram Network Error",
    OutcomeKind.TIMEOUT: "Telegram Timeout",
}


def sanitize_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() not in SENSITIVE_HEADERS}


def redact_url(url: str) -> str:
    """Replace the values of credential-like query parameters."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (k, REDACTED if k.lower() in SENSITIVE_QUERY_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="[]")))


def extract_secret(request: DeliveryRequest) -> str | None:
    """Bearer token from Authorization, falling back to the secret_key query parameter."""
    auth = ""
    for name, value in request.headers.items():
        if name.lower() == "authorization":
            auth = value
            break
    if auth.startswith("Bearer "):
        return auth[7:].strip() or None
    return request.query_params.get("secret_key") or None


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


@dataclass
class _Trace:
    """Terminal data gathered while a request moves through the stages."""

    payload_validated: bool = True
    validation_errors: list[str] | None = None
    message_formatted: str | None = None
    telegram_sent: bool = False
    telegram_failed: bool = False
    telegram_response: str | None = None
    notification: tuple[str, str] | None = None
    audit_events: list[AuditEvent] = field(default_factory=list)


class DeliveryPipeline:
    """Delivers inbound webhook payloads to Telegram."""

    def __init__(
        self,
        webhooks: WebhookRepository,
        logs: WebhookLogRepository,
        stats: WebhookStatRecorder,
        db: TelehookDB,
        formatter: MessageFormatter,
        telegram: TelegramClient,
        notifier: FailureNotifier,
        audit_logger: AuditLogger | None = None,
        *,
        enable_webhook_logging: bool = True,
        disabled_status_code: int = 400,
        log_disabled_requests: bool = True,
    ) -> None:
        self._webhooks = webhooks
        self._logs = logs
        self._stats = stats
        self._db = db
        self._formatter = formatter
        self._telegram = telegram
        self._notifier = notifier
        self._audit = audit_logger
        self._enable_webhook_logging = enable_webhook_logging
        self._disabled_status_code = disabled_status_code
        self._log_disabled_requests = log_disabled_requests
        self._notifications: set[asyncio.Task[bool]] = set()

    async def process(self, request: DeliveryRequest) -> DeliveryResult:
        request_id = str(uuid.uuid4())
        started = time.perf_counter()

        webhook = self._webhooks.get_by_uuid(request.public_id) if _is_uuid(request.public_id) else None
        if webhook is None:
            logger.warning("Webhook %s not found", request.public_id)
            return DeliveryResult.error(404, request_id, FailureKind.NOT_FOUND, "Webhook not found")

        trace = _Trace()
        try:
            result = await self._deliver(webhook, request, request_id, trace)
        except Exception as exc:
            logger.exception("Error processing webhook %s", webhook.uuid)
            result = DeliveryResult.error(
                500, request_id, FailureKind.INTERNAL_ERROR, "Internal server error",
            )
            trace.notification = ("Processing Error", str(exc))

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._persist(webhook, request, result, trace, elapsed_ms)
        for event in trace.audit_events:
            self._write_audit(event)

        if trace.notification is not None:
            failure_type, message = trace.notification
            self._schedule_notification(webhook.name, failure_type, message, request_id)

        logger.info(
            "Webhook %s request %s finished with %d in %dms",
            webhook.uuid, request_id, result.status_code, elapsed_ms,
        )
        return result

    async def _deliver(
        self,
        webhook: WebhookConfig,
        request: DeliveryRequest,
        request_id: str,
        trace: _Trace,
    ) -> DeliveryResult:
        if webhook.is_disabled:
            logger.info("Webhook %s is disabled, rejecting request", webhook.uuid)
            return DeliveryResult.error(
                self._disabled_status_code, request_id, FailureKind.DISABLED, "Webhook is disabled",
            )

        if webhook.is_protected:
            rejected = self._check_protection(webhook, request, request_id, trace)
            if rejected is not None:
                return rejected

        try:
            payload = json.loads(request.body or b"")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning("Webhook %s received an invalid JSON payload: %s", webhook.uuid, exc)
            trace.payload_validated = False
            trace.validation_errors = [f"Invalid JSON payload: {exc}"]
            return DeliveryResult.error(
                400, request_id, FailureKind.INVALID_PAYLOAD, "Invalid JSON payload",
                trace.validation_errors,
            )

        formatted = self._formatter.format(webhook, payload)
        if not formatted.ok:
            trace.payload_validated = False
            trace.validation_errors = list(formatted.errors)
            trace.notification = ("Message Formatting", "; ".join(formatted.errors))
            return DeliveryResult.error(
                400, request_id, FailureKind.RENDER_FAILURE, "Message formatting failed",
                trace.validation_errors,
            )
        trace.message_formatted = formatted.text

        outcome = await self._telegram.send_message(
            webhook.bot.bot_token,
            webhook.bot.chat_id,
            formatted.text or "",
            webhook.parse_mode,
            disable_web_page_preview=webhook.disable_web_page_preview,
            disable_notification=webhook.disable_notification,
            topic_id=webhook.topic_id,
        )
        return self._delivery_result(webhook, request, request_id, outcome, trace)

    def _check_protection(
        self,
        webhook: WebhookConfig,
        request: DeliveryRequest,
        request_id: str,
        trace: _Trace,
    ) -> DeliveryResult | None:
        provided = extract_secret(request)
        expected = webhook.secret_key or ""

        if provided is None:
            reason, status, message = "missing_secret", 401, "Secret key required"
        elif not hmac.compare_digest(provided.encode(), expected.encode()):
            reason, status, message = "invalid_secret", 403, "Invalid secret key"
        else:
            trace.audit_events.append(self._protection_event(
                webhook, request, request_id, AuditEventType.PROTECTION_SUCCESS,
                "success", RiskLevel.INFO,
            ))
            return None

        logger.warning("Protection check failed for webhook %s: %s", webhook.uuid, reason)
        trace.audit_events.append(self._protection_event(
            webhook, request, request_id, AuditEventType.PROTECTION_FAILURE,
            "failure", RiskLevel.HIGH, {"reason": reason},
        ))
        return DeliveryResult.error(status, request_id, FailureKind.UNAUTHORIZED, message)

    @staticmethod
    def _protection_event(
        webhook: WebhookConfig,
        request: DeliveryRequest,
        request_id: str,
        event_type: AuditEventType,
        result: str,
        risk: RiskLevel,
        details: dict[str, object] | None = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            source_ip=request.client_ip,
            webhook_uuid=webhook.uuid,
            request_id=request_id,
            action=f"{request.method} /api/trigger/{webhook.uuid}",
            result=result,
            risk_level=risk,
            details=details,
        )

    def _delivery_result(
        self,
        webhook: WebhookConfig,
        request: DeliveryRequest,
        request_id: str,
        outcome: DeliveryOutcome,
        trace: _Trace,
    ) -> DeliveryResult:
        trace.telegram_response = outcome.body if outcome.body is not None else outcome.error
        if outcome.ok:
            trace.telegram_sent = True
            return DeliveryResult(status_code=200, request_id=request_id, raw_body=outcome.body or "{}")

        trace.telegram_failed = True
        trace.notification = (_NOTIFY_TYPES[outcome.kind], outcome.error or "Unknown error")
        kind = (
            FailureKind.DELIVERY_TRANSPORT_ERROR if outcome.is_transport_error
            else FailureKind.DELIVERY_API_ERROR
        )
        logger.error(
            "Delivery failed for webhook %s (%s): %s", webhook.uuid, outcome.kind.value, outcome.error,
        )
        trace.audit_events.append(AuditEvent(
            event_type=AuditEventType.DELIVERY_FAILURE,
            source_ip=request.client_ip,
            webhook_uuid=webhook.uuid,
            request_id=request_id,
            action="send_message",
            result="failure",
            risk_level=RiskLevel.MEDIUM,
            details={
                "outcome": outcome.kind.value,
                "status_code": outcome.status_code,
                "error": outcome.error,
            },
        ))
        return DeliveryResult.error(
            502, request_id, kind, "Failed to send message to Telegram",
            [outcome.error] if outcome.error else None,
        )

    def _persist(
        self,
        webhook: WebhookConfig,
        request: DeliveryRequest,
        result: DeliveryResult,
        trace: _Trace,
        elapsed_ms: int,
    ) -> None:
        write_log = self._enable_webhook_logging and (
            result.failure is not FailureKind.DISABLED or self._log_disabled_requests
        )
        event = StatEvent(
            status_code=result.status_code,
            processing_time_ms=elapsed_ms,
            payload_validated=trace.payload_validated,
            telegram_failed=trace.telegram_failed,
        )
        try:
            with self._db.transaction():
                if write_log:
                    self._logs.add(WebhookLog(
                        webhook_id=webhook.id,
                        request_id=result.request_id,
                        http_method=request.method,
                        request_url=redact_url(request.url),
                        request_headers=sanitize_headers(request.headers),
                        request_body=request.body.decode("utf-8", errors="replace"),
                        response_status_code=result.status_code,
                        response_body=result.response_text(),
                        processing_time_ms=elapsed_ms,
                        payload_validated=trace.payload_validated,
                        validation_errors=trace.validation_errors,
                        message_formatted=trace.message_formatted,
                        telegram_sent=trace.telegram_sent,
                        telegram_response=trace.telegram_response,
                    ))
                self._stats.record(webhook.id, event)
        except sqlite3.Error as exc:
            logger.exception("Failed to persist log and stats for webhook %s", webhook.uuid)
            self._write_audit(AuditEvent(
                event_type=AuditEventType.PERSISTENCE_FAILURE,
                webhook_uuid=webhook.uuid,
                request_id=result.request_id,
                action="persist_webhook_log",
                result="failure",
                risk_level=RiskLevel.MEDIUM,
                details={"error": str(exc), "status_code": result.status_code},
            ))
            return
        result.log_written = write_log

    def _schedule_notification(
        self, webhook_name: str, failure_type: str, message: str, request_id: str,
    ) -> None:
        if not self._notifier.is_enabled():
            logger.debug("Failure notifications disabled, not alerting for %s", webhook_name)
            return
        task = asyncio.create_task(
            self._notifier.notify_failure(webhook_name, failure_type, message, request_id),
        )
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

    async def wait_for_notifications(self) -> None:
        """Wait for every scheduled failure notification to finish."""
        while self._notifications:
            pending = list(self._notifications)
            await asyncio.gather(*pending, return_exceptions=True)
            self._notifications.difference_update(pending)

    def _write_audit(self, event: AuditEvent) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(event)
        except OSError:
            logger.exception("Could not write %s to the audit log", event.event_type.value)
