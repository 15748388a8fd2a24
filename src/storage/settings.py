"""Application settings storage (single row)."""

from __future__ import annotations

from datetime import UTC, datetime

from src.models import NotificationSettings
from src.storage.db import TelehookDB


class SettingsRepository:
    def __init__(self, db: TelehookDB) -> None:
        self._db = db

    def get_notification_settings(self) -> NotificationSettings:
        """Stored settings, or disabled defaults when nothing was saved yet."""
        row = self._db.fetch_one("SELECT * FROM app_settings WHERE id = 1")
        if row is None:
            return NotificationSettings()
        return NotificationSettings(
            enabled=bool(row["enable_failure_notifications"]),
            bot_token=row["notification_bot_token"],
            chat_id=row["notification_chat_id"],
            topic_id=row["notification_topic_id"],
        )

    def save_notification_settings(self, settings: NotificationSettings) -> None:
        self._db.execute(
            """INSERT INTO app_settings
               (id, enable_failure_notifications, notification_bot_token,
                notification_chat_id, notification_topic_id, updated_at)
               VALUES (1, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 enable_failure_notifications=excluded.enable_failure_notifications,
                 notification_bot_token=excluded.notification_bot_token,
                 notification_chat_id=excluded.notification_chat_id,
                 notification_topic_id=excluded.notification_topic_id,
                 updated_at=excluded.updated_at""",
            (
                int(settings.enabled),
                settings.bot_token,
                settings.chat_id,
                settings.topic_id,
                datetime.now(UTC).isoformat(),
            ),
        )
