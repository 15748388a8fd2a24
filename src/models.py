"""Shared Pydantic data models for telehook."""

from __future__ import annotations

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

# --- Enums ---


class ParseMode(str, Enum):
    """Telegram formatting dialects, named as the Bot API expects them."""

    MARKDOWN = "Markdown"
    MARKDOWN_V2 = "MarkdownV2"
    HTML = "HTML"

    @classmethod
    def parse(cls, value: str | ParseMode) -> ParseMode:
        """Case-insensitive lookup by API name."""
        if isinstance(value, ParseMode):
            return value
        for mode in cls:
            if mode.value.lower() == value.strip().lower():
                return mode
        raise ValueError(f"Unsupported parse mode: {value!r}")


class AuditEventType(str, Enum):
    PROTECTION_SUCCESS = "protection_success"
    PROTECTION_FAILURE = "protection_failure"
    DELIVERY_FAILURE = "delivery_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    NOTIFICATION_FAILURE = "notification_failure"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _today() -> date:
    return datetime.now(UTC).date()


# --- Configuration entities ---


class BotConfig(BaseModel):
    """A Telegram bot: credential plus the chat it posts into."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    bot_token: str = Field(min_length=1)
    chat_id: str = Field(min_length=1)
    has_passed_test: bool = False


class WebhookConfig(BaseModel):
    """An inbound webhook endpoint bound to one bot."""

    model_config = ConfigDict(frozen=True)

    id: int
    uuid: str
    name: str
    bot: BotConfig
    message_template: str
    parse_mode: ParseMode = ParseMode.MARKDOWN_V2
    disable_web_page_preview: bool = True
    disable_notification: bool = False
    topic_id: str | None = None
    is_protected: bool = False
    secret_key: str | None = None
    is_disabled: bool = False
    payload_sample: str = ""

    @model_validator(mode="after")
    def _secret_matches_protection(self) -> WebhookConfig:
        if self.is_protected != bool(self.secret_key):
            raise ValueError("secret_key must be set if and only if is_protected is true")
        return self


class NotificationSettings(BaseModel):
    """Where failure alerts go. Read-only input to the notifier."""

    enabled: bool = False
    bot_token: str | None = None
    chat_id: str | None = None
    topic_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.bot_token) and bool(self.chat_id)


# --- Audit records ---


class WebhookLog(BaseModel):
    """One row per inbound request that resolved to a webhook."""

    id: int | None = None
    webhook_id: int
    request_id: str
    http_method: str = "POST"
    request_url: str = ""
    request_headers: dict[str, str] = Field(default_factory=dict)
    request_body: str | None = None
    response_status_code: int = 0
    response_body: str | None = None
    processing_time_ms: int = Field(default=0, ge=0)
    payload_validated: bool = True
    validation_errors: list[str] | None = None
    message_formatted: str | None = None
    telegram_sent: bool = False
    telegram_response: str | None = None
    created_at: str = Field(default_factory=_now_iso)


class WebhookStat(BaseModel):
    """Daily counters for one webhook, or the global rollup when webhook_id is None."""

    day: date = Field(default_factory=_today)
    webhook_id: int | None = None
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    validation_failures: int = 0
    telegram_failures: int = 0
    total_processing_time_ms: int = 0
    avg_processing_time_ms: int = 0
    min_processing_time_ms: int = 0
    max_processing_time_ms: int = 0


class AuditEvent(BaseModel):
    timestamp: str = Field(default_factory=_now_iso)
    event_type: AuditEventType
    source_ip: str | None = None
    webhook_uuid: str | None = None
    request_id: str | None = None
    action: str
    result: str  # "success" | "failure" | "blocked"
    risk_level: RiskLevel
    details: dict[str, object] | None = None
