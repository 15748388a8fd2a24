"""Append-only storage for per-request webhook logs."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from src.models import WebhookLog
from src.storage.db import TelehookDB

logger = logging.getLogger(__name__)


def _log_from_row(row: dict[str, Any]) -> WebhookLog:
    errors = row["validation_errors_json"]
    return WebhookLog(
        id=row["id"],
        webhook_id=row["webhook_id"],
        request_id=row["request_id"],
        http_method=row["http_method"],
        request_url=row["request_url"],
        request_headers=json.loads(row["request_headers_json"]),
        request_body=row["request_body"],
        response_status_code=row["response_status_code"],
        response_body=row["response_body"],
        processing_time_ms=row["processing_time_ms"],
        payload_validated=bool(row["payload_validated"]),
        validation_errors=json.loads(errors) if errors else None,
        message_formatted=row["message_formatted"],
        telegram_sent=bool(row["telegram_sent"]),
        telegram_response=row["telegram_response"],
        created_at=row["created_at"],
    )


class WebhookLogRepository:
    """Rows are inserted once and never updated."""

    def __init__(self, db: TelehookDB) -> None:
        self._db = db

    def add(self, log: WebhookLog) -> int:
        cursor = self._db.execute(
            """INSERT INTO webhook_logs
               (webhook_id, request_id, http_method, request_url, request_headers_json,
                request_body, response_status_code, response_body, processing_time_ms,
                payload_validated, validation_errors_json, message_formatted,
                telegram_sent, telegram_response, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                log.webhook_id,
                log.request_id,
                log.http_method,
                log.request_url,
                json.dumps(log.request_headers),
                log.request_body,
                log.response_status_code,
                log.response_body,
                log.processing_time_ms,
                int(log.payload_validated),
                json.dumps(log.validation_errors) if log.validation_errors else None,
                log.message_formatted,
                int(log.telegram_sent),
                log.telegram_response,
                log.created_at,
            ),
        )
        return int(cursor.lastrowid or 0)

    def get_by_request_id(self, request_id: str) -> WebhookLog | None:
        row = self._db.fetch_one(
            "SELECT * FROM webhook_logs WHERE request_id = ?", (request_id,),
        )
        return _log_from_row(row) if row else None

    def list_logs(
        self,
        webhook_id: int | None = None,
        status_code: int | None = None,
        limit: int = 100,
    ) -> list[WebhookLog]:
        """Newest first, optionally filtered by webhook and response status."""
        clauses: list[str] = []
        params: list[Any] = []
        if webhook_id is not None:
            clauses.append("webhook_id = ?")
            params.append(webhook_id)
        if status_code is not None:
            clauses.append("response_status_code = ?")
            params.append(status_code)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        rows = self._db.fetch_all(
            f"SELECT * FROM webhook_logs {where} ORDER BY id DESC LIMIT ?", tuple(params),
        )
        return [_log_from_row(r) for r in rows]

    def count(self, webhook_id: int | None = None) -> int:
        if webhook_id is None:
            row = self._db.fetch_one("SELECT COUNT(*) AS n FROM webhook_logs")
        else:
            row = self._db.fetch_one(
                "SELECT COUNT(*) AS n FROM webhook_logs WHERE webhook_id = ?", (webhook_id,),
            )
        return int(row["n"]) if row else 0

    def purge_older_than(self, days: int) -> int:
        """Delete rows older than ``days``. A non-positive value keeps everything."""
        if days <= 0:
            return 0
        cutoff = (datetime.now(UTC) - timedelta(days=days)).isoformat()
        cursor = self._db.execute("DELETE FROM webhook_logs WHERE created_at < ?", (cutoff,))
        deleted = cursor.rowcount
        if deleted:
            logger.info("Purged %d webhook logs older than %s", deleted, cutoff)
        return deleted
