"""Operator alerts for failed webhook deliveries.

Alerts go through the same TelegramClient as regular messages but to the chat
configured in NotificationSettings. The notifier never raises: every failure is
logged (and audited when an AuditLogger is configured) and then dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from src.escaping.markdown_v2 import escape_code
from src.models import AuditEvent, AuditEventType, NotificationSettings, ParseMode, RiskLevel

if TYPE_CHECKING:
    from src.audit.logger import AuditLogger
    from src.telegram.client import TelegramClient

logger = logging.getLogger(__name__)

TEST_MESSAGE = (
    "🔔 *Test Notification*\n\n"
    "This is a test notification from TeleHook\\. "
    "Your failure notification system is working correctly\\."
)


@dataclass(frozen=True)
class NotificationTestResult:
    success: bool
    error: str | None = None


def format_failure_message(
    webhook_name: str,
    failure_type: str,
    error_message: str,
    request_id: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build the MarkdownV2 alert body. Dynamic values only appear in code spans."""
    timestamp = (now or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M:%S UTC")
    lines = [
        "🚨 *Webhook Failure Alert*",
        "",
        f"*Webhook:* `{escape_code(webhook_name)}`",
        f"*Failure Type:* `{escape_code(failure_type)}`",
        f"*Time:* `{timestamp}`",
    ]
    if request_id:
        lines.append(f"*Request ID:* `{escape_code(request_id)}`")
    lines += [
        "",
        "*Error Details:*",
        "```",
        escape_code(error_message),
        "```",
    ]
    return "\n".join(lines) + "\n"


class FailureNotifier:
    """Sends failure alerts when notifications are enabled and configured."""

    def __init__(
        self,
        client: TelegramClient,
        settings_provider: Callable[[], NotificationSettings],
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._client = client
        self._settings_provider = settings_provider
        self._audit = audit_logger

    def _load_settings(self) -> NotificationSettings | None:
        try:
            return self._settings_provider()
        except Exception:
            logger.exception("Could not load notification settings")
            return None

    def is_enabled(self) -> bool:
        settings = self._load_settings()
        return settings is not None and settings.enabled

    async def notify_failure(
        self,
        webhook_name: str,
        failure_type: str,
        error_message: str,
        request_id: str | None = None,
    ) -> bool:
        """Send one alert. Returns True only if Telegram accepted it."""
        try:
            settings = self._load_settings()
            if settings is None or not settings.enabled:
                logger.debug("Failure notifications disabled, skipping alert for %s", webhook_name)
                return False
            if not settings.is_complete:
                logger.warning("Notification settings incomplete - bot token or chat ID missing")
                return False

            text = format_failure_message(webhook_name, failure_type, error_message, request_id)
            outcome = await self._client.send_message(
                settings.bot_token or "",
                settings.chat_id or "",
                text,
                ParseMode.MARKDOWN_V2,
                disable_web_page_preview=True,
                disable_notification=False,
                topic_id=settings.topic_id,
            )
            if not outcome.ok:
                logger.error(
                    "Failure notification for %s was not delivered: %s",
                    webhook_name, outcome.error,
                )
                self._audit_failure(webhook_name, failure_type, request_id, outcome.error)
                return False

            logger.info("Failure notification sent for webhook %s (%s)", webhook_name, failure_type)
            return True
        except Exception as exc:
            logger.exception("Error sending failure notification for webhook %s", webhook_name)
            self._audit_failure(webhook_name, failure_type, request_id, str(exc))
            return False

    async def send_test_notification(self) -> NotificationTestResult:
        settings = self._load_settings()
        if settings is None or not settings.is_complete:
            logger.warning("Notification settings incomplete - bot token or chat ID missing")
            return NotificationTestResult(False, "Notification settings are incomplete.")

        outcome = await self._client.send_message(
            settings.bot_token or "",
            settings.chat_id or "",
            TEST_MESSAGE,
            ParseMode.MARKDOWN_V2,
            disable_web_page_preview=True,
            disable_notification=False,
            topic_id=settings.topic_id,
        )
        if not outcome.ok:
            return NotificationTestResult(False, f"Failed to send test notification: {outcome.error}")
        logger.info("Test notification sent")
        return NotificationTestResult(True)

    def _audit_failure(
        self, webhook_name: str, failure_type: str, request_id: str | None, error: str | None,
    ) -> None:
        if not self._audit:
            return
        try:
            self._audit.log(AuditEvent(
                event_type=AuditEventType.NOTIFICATION_FAILURE,
                request_id=request_id,
                action="notify_failure",
                result="failure",
                risk_level=RiskLevel.MEDIUM,
                details={"webhook": webhook_name, "failure_type": failure_type, "error": error},
            ))
        except OSError:
            logger.exception("Could not write notification failure to the audit log")
