"""Tests for the security audit log."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from src.audit.logger import AuditLogger, validate_audit_chain
from src.models import AuditEventType
from tests.conftest import make_audit_event


def _lines(path: Path) -> list[str]:
    return path.read_text().strip().split("\n")


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "audit" / "telehook.jsonl"


class TestWriting:
    def test_event_written_as_json_line(self, log_file: Path) -> None:
        AuditLogger(str(log_file)).log(make_audit_event(
            webhook_uuid="abc", request_id="r1", details={"reason": "invalid_secret"},
        ))

        entry = json.loads(_lines(log_file)[0])
        assert entry["event_type"] == "protection_failure"
        assert entry["risk_level"] == "high"
        assert entry["webhook_uuid"] == "abc"
        assert entry["details"] == {"reason": "invalid_secret"}
        assert "T" in entry["timestamp"]

    def test_parent_directory_created(self, log_file: Path) -> None:
        assert not log_file.parent.exists()
        AuditLogger(str(log_file)).log(make_audit_event())
        assert log_file.exists()

    def test_events_appended_in_order(self, log_file: Path) -> None:
        audit = AuditLogger(str(log_file))
        for event_type in (
            AuditEventType.PROTECTION_FAILURE,
            AuditEventType.PERSISTENCE_FAILURE,
            AuditEventType.NOTIFICATION_FAILURE,
        ):
            audit.log(make_audit_event(event_type=event_type))

        types = [json.loads(line)["event_type"] for line in _lines(log_file)]
        assert types == ["protection_failure", "persistence_failure", "notification_failure"]


class TestHashChain:
    def test_first_entry_has_no_prev_hash(self, log_file: Path) -> None:
        AuditLogger(str(log_file)).log(make_audit_event())
        assert json.loads(_lines(log_file)[0])["prev_hash"] is None

    def test_entries_link_to_previous_line(self, log_file: Path) -> None:
        audit = AuditLogger(str(log_file))
        audit.log(make_audit_event(action="first"))
        audit.log(make_audit_event(action="second"))

        first, second = _lines(log_file)
        assert json.loads(second)["prev_hash"] == hashlib.sha256(first.encode()).hexdigest()

    def test_chain_continues_after_reopen(self, log_file: Path) -> None:
        AuditLogger(str(log_file)).log(make_audit_event(action="before restart"))
        AuditLogger(str(log_file)).log(make_audit_event(action="after restart"))
        assert validate_audit_chain(log_file).valid

    def test_tampering_detected(self, log_file: Path) -> None:
        audit = AuditLogger(str(log_file))
        for i in range(4):
            audit.log(make_audit_event(action=f"event-{i}"))
        lines = _lines(log_file)
        lines[1] = lines[1].replace("event-1", "edited")
        log_file.write_text("\n".join(lines) + "\n")

        result = validate_audit_chain(log_file)
        assert not result.valid
        assert result.broken_at_line == 3


class TestRotation:
    def test_rotates_at_threshold(self, log_file: Path) -> None:
        audit = AuditLogger(str(log_file), max_bytes=200, backup_count=2)
        for i in range(20):
            audit.log(make_audit_event(action=f"event-{i}"))

        assert log_file.with_name("telehook.jsonl.1").exists()
        assert not log_file.with_name("telehook.jsonl.3").exists()

    def test_rotation_starts_a_new_chain(self, log_file: Path) -> None:
        audit = AuditLogger(str(log_file), max_bytes=200, backup_count=2)
        for i in range(10):
            audit.log(make_audit_event(action=f"event-{i}"))

        assert json.loads(_lines(log_file)[0])["prev_hash"] is None
        assert validate_audit_chain(log_file).valid
        assert validate_audit_chain(log_file.with_name("telehook.jsonl.1")).valid

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch, log_file: Path) -> None:
        monkeypatch.setenv("AUDIT_LOG_MAX_BYTES", "1024")
        monkeypatch.setenv("AUDIT_LOG_BACKUP_COUNT", "3")
        audit = AuditLogger.from_env(str(log_file))
        assert audit._max_bytes == 1024
        assert audit._backup_count == 3
