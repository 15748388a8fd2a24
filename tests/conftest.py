"""Shared test fixtures for telehook."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from src.audit.logger import AuditLogger
from src.models import AuditEvent, AuditEventType, BotConfig, ParseMode, RiskLevel, WebhookConfig
from src.storage.db import TelehookDB
from src.storage.logs import WebhookLogRepository
from src.storage.settings import SettingsRepository
from src.storage.stats import WebhookStatRecorder
from src.storage.webhooks import WebhookRepository

BOT_TOKEN = "123456:TEST-TOKEN-abcd"
CHAT_ID = "-100200300"

TELEGRAM_OK_BODY = json.dumps({
    "ok": True,
    "result": {"message_id": 42, "chat": {"id": -100200300}, "text": "Value: 5"},
})


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock(spec=AuditLogger)


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "telehook.db")


@pytest.fixture
def db(db_path: str) -> Iterator[TelehookDB]:
    database = TelehookDB(db_path)
    yield database
    database.close()


@pytest.fixture
def webhook_repo(db: TelehookDB) -> WebhookRepository:
    return WebhookRepository(db)


@pytest.fixture
def log_repo(db: TelehookDB) -> WebhookLogRepository:
    return WebhookLogRepository(db)


@pytest.fixture
def stats(db: TelehookDB) -> WebhookStatRecorder:
    return WebhookStatRecorder(db)


@pytest.fixture
def settings_repo(db: TelehookDB) -> SettingsRepository:
    return SettingsRepository(db)


def telegram_transport(
    status_code: int = 200,
    body: str = TELEGRAM_OK_BODY,
    calls: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """MockTransport answering every Telegram call with a fixed response."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status_code, text=body)

    return httpx.MockTransport(handler)


def raising_transport(exc_factory: Callable[[httpx.Request], Exception]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_factory(request)

    return httpx.MockTransport(handler)


# --- Factory functions for test data ---


def make_audit_event(**kwargs: Any) -> AuditEvent:
    """Factory for AuditEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_type": AuditEventType.PROTECTION_FAILURE,
        "action": "test_action",
        "result": "failure",
        "risk_level": RiskLevel.HIGH,
    }
    defaults.update(kwargs)
    return AuditEvent(**defaults)


def make_bot(**kwargs: Any) -> BotConfig:
    defaults: dict[str, Any] = {
        "id": 1,
        "name": "alerts-bot",
        "bot_token": BOT_TOKEN,
        "chat_id": CHAT_ID,
    }
    defaults.update(kwargs)
    return BotConfig(**defaults)


def make_webhook(**kwargs: Any) -> WebhookConfig:
    """Factory for an in-memory WebhookConfig (not stored)."""
    defaults: dict[str, Any] = {
        "id": 1,
        "uuid": "0b6f1f8e-2a43-4c55-9f0e-3f1c2d4b5a69",
        "name": "deploys",
        "bot": make_bot(),
        "message_template": "Value: {{ x }}",
        "parse_mode": ParseMode.MARKDOWN_V2,
    }
    defaults.update(kwargs)
    return WebhookConfig(**defaults)


def store_webhook(repo: WebhookRepository, **kwargs: Any) -> WebhookConfig:
    """Create a bot plus webhook in the database and return the webhook."""
    bot = repo.create_bot("alerts-bot", BOT_TOKEN, CHAT_ID)
    defaults: dict[str, Any] = {
        "name": "deploys",
        "bot_id": bot.id,
        "message_template": "Value: {{ x }}",
        "parse_mode": ParseMode.MARKDOWN_V2,
    }
    defaults.update(kwargs)
    return repo.create_webhook(**defaults)
