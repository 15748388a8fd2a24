"""SQLite database for telehook.

This module provides the TelehookDB class for persistent storage of:
- Bots and webhooks
- Per-request webhook logs
- Daily webhook statistics
- Application settings
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS bots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    bot_token TEXT NOT NULL,
    chat_id TEXT NOT NULL,
    has_passed_test INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS webhooks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uuid TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    bot_id INTEGER NOT NULL,
    message_template TEXT NOT NULL,
    parse_mode TEXT NOT NULL DEFAULT 'MarkdownV2'
        CHECK (parse_mode IN ('Markdown', 'MarkdownV2', 'HTML')),
    disable_web_page_preview INTEGER NOT NULL DEFAULT 1,
    disable_notification INTEGER NOT NULL DEFAULT 0,
    topic_id TEXT,
    is_protected INTEGER NOT NULL DEFAULT 0,
    secret_key TEXT,
    is_disabled INTEGER NOT NULL DEFAULT 0,
    payload_sample TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    FOREIGN KEY (bot_id) REFERENCES bots(id)
);

-- Append-only; one row per request that resolved to a webhook
CREATE TABLE IF NOT EXISTS webhook_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    webhook_id INTEGER NOT NULL,
    request_id TEXT NOT NULL,
    http_method TEXT NOT NULL,
    request_url TEXT NOT NULL,
    request_headers_json TEXT NOT NULL,
    request_body TEXT,
    response_status_code INTEGER NOT NULL,
    response_body TEXT,
    processing_time_ms INTEGER NOT NULL,
    payload_validated INTEGER NOT NULL,
    validation_errors_json TEXT,
    message_formatted TEXT,
    telegram_sent INTEGER NOT NULL,
    telegram_response TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (webhook_id) REFERENCES webhooks(id)
);

CREATE INDEX IF NOT EXISTS idx_logs_webhook ON webhook_logs(webhook_id);
CREATE INDEX IF NOT EXISTS idx_logs_created ON webhook_logs(created_at);

-- scope_key is the webhook id, or 0 for the global rollup (webhook_id NULL)
CREATE TABLE IF NOT EXISTS webhook_stats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    webhook_id INTEGER,
    scope_key INTEGER NOT NULL,
    total_requests INTEGER NOT NULL DEFAULT 0,
    successful_requests INTEGER NOT NULL DEFAULT 0,
    failed_requests INTEGER NOT NULL DEFAULT 0,
    validation_failures INTEGER NOT NULL DEFAULT 0,
    telegram_failures INTEGER NOT NULL DEFAULT 0,
    total_processing_time_ms INTEGER NOT NULL DEFAULT 0,
    avg_processing_time_ms INTEGER NOT NULL DEFAULT 0,
    min_processing_time_ms INTEGER NOT NULL DEFAULT 0,
    max_processing_time_ms INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (date, scope_key)
);

CREATE TABLE IF NOT EXISTS app_settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    enable_failure_notifications INTEGER NOT NULL DEFAULT 0,
    notification_bot_token TEXT,
    notification_chat_id TEXT,
    notification_topic_id TEXT,
    updated_at TEXT NOT NULL
);
"""


class TelehookDB:
    """SQLite database wrapper.

    Provides:
    - WAL mode for crash recovery
    - Parameterized queries only
    - Schema initialization on first use
    - Explicit transactions spanning several statements
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._initialize()

    def _initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        # The ASGI test client and the CLI may touch the connection from another thread.
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(SCHEMA_SQL)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several execute() calls into one commit; roll back on error."""
        with self._lock:
            conn = self._connection()
            self._in_transaction = True
            try:
                yield
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()
            finally:
                self._in_transaction = False

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute a statement; commits immediately unless inside transaction()."""
        with self._lock:
            conn = self._connection()
            cursor = conn.execute(sql, params)
            if not self._in_transaction:
                conn.commit()
            return cursor

    def fetch_one(self, sql: str, params: tuple[Any, ...] = ()) -> dict[str, Any] | None:
        with self._lock:
            row = self._connection().execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._connection().execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> TelehookDB:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        self.close()
