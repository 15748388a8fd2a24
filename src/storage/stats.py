"""Daily request statistics, per webhook and globally.

Each request increments two rows: its webhook's row for the day and the global
row (webhook_id NULL, scope_key 0). Both are single upsert statements, so
concurrent requests on the same day never lose an increment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from pydantic import BaseModel

from src.models import WebhookStat
from src.storage.db import TelehookDB

GLOBAL_SCOPE = 0

_UPSERT_SQL = """
INSERT INTO webhook_stats
    (date, webhook_id, scope_key, total_requests, successful_requests, failed_requests,
     validation_failures, telegram_failures, total_processing_time_ms,
     avg_processing_time_ms, min_processing_time_ms, max_processing_time_ms,
     created_at, updated_at)
VALUES (?, ?, ?, 1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (date, scope_key) DO UPDATE SET
    total_requests = total_requests + 1,
    successful_requests = successful_requests + excluded.successful_requests,
    failed_requests = failed_requests + excluded.failed_requests,
    validation_failures = validation_failures + excluded.validation_failures,
    telegram_failures = telegram_failures + excluded.telegram_failures,
    total_processing_time_ms = total_processing_time_ms + excluded.total_processing_time_ms,
    avg_processing_time_ms =
        (total_processing_time_ms + excluded.total_processing_time_ms) / (total_requests + 1),
    min_processing_time_ms = MIN(min_processing_time_ms, excluded.min_processing_time_ms),
    max_processing_time_ms = MAX(max_processing_time_ms, excluded.max_processing_time_ms),
    updated_at = excluded.updated_at
"""


@dataclass(frozen=True)
class StatEvent:
    """What one finished request contributes to the counters."""

    status_code: int
    processing_time_ms: int
    payload_validated: bool = True
    telegram_failed: bool = False

    @property
    def successful(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def failed(self) -> bool:
        return self.status_code >= 400


class DailyTrendItem(BaseModel):
    date: str
    requests: int
    success_rate: float
    avg_processing_time_ms: int


class TopWebhook(BaseModel):
    webhook_id: int
    name: str | None
    total_requests: int
    success_rate: float


class OverviewStats(BaseModel):
    period_days: int
    total_requests: int
    success_rate: float
    failed_requests: int
    avg_processing_time_ms: float
    today_requests: int
    top_webhooks: list[TopWebhook]
    daily_trend: list[DailyTrendItem]


class WebhookSummary(BaseModel):
    webhook_id: int
    period_days: int
    total_requests: int
    successful_requests: int
    failed_requests: int
    validation_failures: int
    telegram_failures: int
    success_rate: float
    avg_processing_time_ms: float
    daily: list[DailyTrendItem]


def _rate(part: int, whole: int) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def _stat_from_row(row: dict[str, Any]) -> WebhookStat:
    return WebhookStat(
        day=date.fromisoformat(row["date"]),
        webhook_id=row["webhook_id"],
        total_requests=row["total_requests"],
        successful_requests=row["successful_requests"],
        failed_requests=row["failed_requests"],
        validation_failures=row["validation_failures"],
        telegram_failures=row["telegram_failures"],
        total_processing_time_ms=row["total_processing_time_ms"],
        avg_processing_time_ms=row["avg_processing_time_ms"],
        min_processing_time_ms=row["min_processing_time_ms"],
        max_processing_time_ms=row["max_processing_time_ms"],
    )


class WebhookStatRecorder:
    def __init__(self, db: TelehookDB) -> None:
        self._db = db

    def record(self, webhook_id: int, event: StatEvent, day: date | None = None) -> None:
        """Increment today's per-webhook and global counters.

        Call inside ``TelehookDB.transaction()`` to commit both rows together.
        """
        day = day or datetime.now(UTC).date()
        for scoped_id in (webhook_id, None):
            self._upsert(day, scoped_id, event)

    def _upsert(self, day: date, webhook_id: int | None, event: StatEvent) -> None:
        now = datetime.now(UTC).isoformat()
        ms = event.processing_time_ms
        self._db.execute(
            _UPSERT_SQL,
            (
                day.isoformat(),
                webhook_id,
                webhook_id if webhook_id is not None else GLOBAL_SCOPE,
                int(event.successful),
                int(event.failed),
                int(not event.payload_validated),
                int(event.telegram_failed),
                ms, ms, ms, ms,
                now, now,
            ),
        )

    def get(self, day: date, webhook_id: int | None = None) -> WebhookStat | None:
        scope = webhook_id if webhook_id is not None else GLOBAL_SCOPE
        row = self._db.fetch_one(
            "SELECT * FROM webhook_stats WHERE date = ? AND scope_key = ?",
            (day.isoformat(), scope),
        )
        return _stat_from_row(row) if row else None

    def history(self, webhook_id: int | None, days: int = 30) -> list[WebhookStat]:
        """Rows for the last ``days`` days, oldest first."""
        today = datetime.now(UTC).date()
        start = today - timedelta(days=days)
        scope = webhook_id if webhook_id is not None else GLOBAL_SCOPE
        rows = self._db.fetch_all(
            """SELECT * FROM webhook_stats
               WHERE scope_key = ? AND date BETWEEN ? AND ? ORDER BY date""",
            (scope, start.isoformat(), today.isoformat()),
        )
        return [_stat_from_row(r) for r in rows]

    def overview(self, days: int = 30) -> OverviewStats:
        today = datetime.now(UTC).date()
        start = today - timedelta(days=days)
        global_stats = self.history(None, days)

        total = sum(s.total_requests for s in global_stats)
        successful = sum(s.successful_requests for s in global_stats)
        failed = sum(s.failed_requests for s in global_stats)
        avg_ms = (
            sum(s.avg_processing_time_ms for s in global_stats) / len(global_stats)
            if global_stats else 0.0
        )
        today_requests = next(
            (s.total_requests for s in global_stats if s.day == today), 0,
        )

        top_rows = self._db.fetch_all(
            """SELECT s.webhook_id, w.name, SUM(s.total_requests) AS total,
                      SUM(s.successful_requests) AS successful
               FROM webhook_stats s LEFT JOIN webhooks w ON w.id = s.webhook_id
               WHERE s.webhook_id IS NOT NULL AND s.date BETWEEN ? AND ?
               GROUP BY s.webhook_id ORDER BY total DESC LIMIT 5""",
            (start.isoformat(), today.isoformat()),
        )

        return OverviewStats(
            period_days=days,
            total_requests=total,
            success_rate=_rate(successful, total),
            failed_requests=failed,
            avg_processing_time_ms=round(avg_ms),
            today_requests=today_requests,
            top_webhooks=[
                TopWebhook(
                    webhook_id=r["webhook_id"],
                    name=r["name"],
                    total_requests=r["total"],
                    success_rate=_rate(r["successful"], r["total"]),
                )
                for r in top_rows
            ],
            daily_trend=[
                DailyTrendItem(
                    date=s.day.isoformat(),
                    requests=s.total_requests,
                    success_rate=_rate(s.successful_requests, s.total_requests),
                    avg_processing_time_ms=s.avg_processing_time_ms,
                )
                for s in global_stats
            ],
        )

    def webhook_summary(self, webhook_id: int, days: int = 30) -> WebhookSummary:
        rows = self.history(webhook_id, days)
        total = sum(s.total_requests for s in rows)
        successful = sum(s.successful_requests for s in rows)
        return WebhookSummary(
            webhook_id=webhook_id,
            period_days=days,
            total_requests=total,
            successful_requests=successful,
            failed_requests=sum(s.failed_requests for s in rows),
            validation_failures=sum(s.validation_failures for s in rows),
            telegram_failures=sum(s.telegram_failures for s in rows),
            success_rate=_rate(successful, total),
            avg_processing_time_ms=(
                sum(s.total_processing_time_ms for s in rows) / total if total else 0.0
            ),
            daily=[
                DailyTrendItem(
                    date=s.day.isoformat(),
                    requests=s.total_requests,
                    success_rate=_rate(s.successful_requests, s.total_requests),
                    avg_processing_time_ms=s.avg_processing_time_ms,
                )
                for s in rows
            ],
        )
