"""Bot and webhook configuration storage."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from src.models import BotConfig, ParseMode, WebhookConfig
from src.storage.db import TelehookDB


class WebhookConfigError(Exception):
    """Raised when a bot or webhook definition violates a write-time rule."""


_WEBHOOK_SELECT = """
    SELECT w.*, b.id AS b_id, b.name AS b_name, b.bot_token AS b_bot_token,
           b.chat_id AS b_chat_id, b.has_passed_test AS b_has_passed_test
    FROM webhooks w JOIN bots b ON b.id = w.bot_id
"""


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _bot_from_row(row: dict[str, Any], prefix: str = "") -> BotConfig:
    return BotConfig(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        bot_token=row[f"{prefix}bot_token"],
        chat_id=row[f"{prefix}chat_id"],
        has_passed_test=bool(row[f"{prefix}has_passed_test"]),
    )


def _webhook_from_row(row: dict[str, Any]) -> WebhookConfig:
    return WebhookConfig(
        id=row["id"],
        uuid=row["uuid"],
        name=row["name"],
        bot=_bot_from_row(row, prefix="b_"),
        message_template=row["message_template"],
        parse_mode=ParseMode(row["parse_mode"]),
        disable_web_page_preview=bool(row["disable_web_page_preview"]),
        disable_notification=bool(row["disable_notification"]),
        topic_id=row["topic_id"],
        is_protected=bool(row["is_protected"]),
        secret_key=row["secret_key"],
        is_disabled=bool(row["is_disabled"]),
        payload_sample=row["payload_sample"],
    )


class WebhookRepository:
    """Read access for the delivery pipeline, plus the writes the CLI needs."""

    def __init__(self, db: TelehookDB) -> None:
        self._db = db

    # --- Bots ---

    def create_bot(self, name: str, bot_token: str, chat_id: str) -> BotConfig:
        if not bot_token or not chat_id:
            raise WebhookConfigError("bot_token and chat_id are required")
        cursor = self._db.execute(
            "INSERT INTO bots (name, bot_token, chat_id, created_at) VALUES (?, ?, ?, ?)",
            (name, bot_token, chat_id, _now()),
        )
        return BotConfig(id=cursor.lastrowid, name=name, bot_token=bot_token, chat_id=chat_id)

    def get_bot(self, bot_id: int) -> BotConfig | None:
        row = self._db.fetch_one("SELECT * FROM bots WHERE id = ?", (bot_id,))
        return _bot_from_row(row) if row else None

    def list_bots(self) -> list[BotConfig]:
        return [_bot_from_row(r) for r in self._db.fetch_all("SELECT * FROM bots ORDER BY id")]

    def mark_bot_tested(self, bot_id: int, passed: bool) -> None:
        self._db.execute(
            "UPDATE bots SET has_passed_test = ? WHERE id = ?", (int(passed), bot_id),
        )

    # --- Webhooks ---

    def create_webhook(
        self,
        name: str,
        bot_id: int,
        message_template: str,
        parse_mode: ParseMode | str = ParseMode.MARKDOWN_V2,
        *,
        disable_web_page_preview: bool = True,
        disable_notification: bool = False,
        topic_id: str | None = None,
        is_protected: bool = False,
        secret_key: str | None = None,
        is_disabled: bool = False,
        payload_sample: str = "",
    ) -> WebhookConfig:
        """Insert a webhook with a fresh public UUID."""
        if is_protected != bool(secret_key):
            raise WebhookConfigError("A secret key is required if and only if the webhook is protected")
        try:
            mode = ParseMode.parse(parse_mode)
        except ValueError as exc:
            raise WebhookConfigError(str(exc)) from exc
        if self.get_bot(bot_id) is None:
            raise WebhookConfigError(f"Bot {bot_id} does not exist")

        public_id = str(uuid.uuid4())
        self._db.execute(
            """INSERT INTO webhooks
               (uuid, name, bot_id, message_template, parse_mode, disable_web_page_preview,
                disable_notification, topic_id, is_protected, secret_key, is_disabled,
                payload_sample, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                public_id, name, bot_id, message_template, mode.value,
                int(disable_web_page_preview), int(disable_notification), topic_id or None,
                int(is_protected), secret_key, int(is_disabled), payload_sample, _now(),
            ),
        )
        webhook = self.get_by_uuid(public_id)
        assert webhook is not None
        return webhook

    def get_by_uuid(self, public_id: str) -> WebhookConfig | None:
        row = self._db.fetch_one(f"{_WEBHOOK_SELECT} WHERE w.uuid = ?", (public_id,))
        return _webhook_from_row(row) if row else None

    def list_webhooks(self) -> list[WebhookConfig]:
        rows = self._db.fetch_all(f"{_WEBHOOK_SELECT} ORDER BY w.id")
        return [_webhook_from_row(r) for r in rows]

    def set_disabled(self, webhook_id: int, disabled: bool) -> int:
        """Returns the number of webhooks updated; 0 means the id does not exist."""
        cursor = self._db.execute(
            "UPDATE webhooks SET is_disabled = ? WHERE id = ?", (int(disabled), webhook_id),
        )
        return cursor.rowcount
