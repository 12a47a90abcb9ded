"""Unit tests for the access log."""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from taskvault.audit import AuditLogger


class TestAuditLoggerInit:
    def test_init_creates_directory(self, temp_vault_dir):
        log_path = temp_vault_dir / "subdir" / "access.log"
        AuditLogger(log_path)

        assert log_path.parent.exists()
        assert oct(log_path.parent.stat().st_mode)[-3:] == "700"

    def test_init_creates_log_file(self, temp_vault_dir):
        log_path = temp_vault_dir / "access.log"
        AuditLogger(log_path)

        assert log_path.exists()
        assert oct(log_path.stat().st_mode)[-3:] == "600"

    def test_init_existing_log_file(self, temp_vault_dir):
        log_path = temp_vault_dir / "access.log"
        log_path.write_text("existing content\n")

        AuditLogger(log_path)

        assert "existing content" in log_path.read_text()


class TestLogEvent:
    def test_format(self, audit_logger):
        audit_logger.log_event("ALLOWED", "MUTATE", "task-add")

        parts = audit_logger.read_recent(1)[0].split()
        assert len(parts) == 4
        assert parts[0].endswith("Z")
        assert parts[1:] == ["ALLOWED", "MUTATE", "task-add"]

    def test_with_reason(self, audit_logger):
        audit_logger.log_event("DENIED", "UNLOCK", reason="unlock-failed")

        parts = audit_logger.read_recent(1)[0].split()
        assert parts[1:] == ["DENIED", "UNLOCK", "-", "unlock-failed"]

    def test_unknown_result(self, audit_logger):
        with pytest.raises(ValueError):
            audit_logger.log_event("MAYBE", "UNLOCK")

    def test_append_only(self, audit_logger):
        for i in range(5):
            audit_logger.log_event("ALLOWED", "MUTATE", f"op-{i}")

        lines = audit_logger.read_recent(100)
        assert [line.split()[3] for line in lines] == [f"op-{i}" for i in range(5)]

    def test_read_recent_limit(self, audit_logger):
        for i in range(10):
            audit_logger.log_event("ALLOWED", "MUTATE", f"op-{i}")

        lines = audit_logger.read_recent(3)
        assert [line.split()[3] for line in lines] == ["op-7", "op-8", "op-9"]

    def test_read_recent_missing_file(self, audit_logger):
        audit_logger.log_path.unlink()
        assert audit_logger.read_recent() == []

    @pytest.mark.parametrize("count", [0, -1])
    def test_read_recent_non_positive(self, audit_logger, count):
        audit_logger.log_event("ALLOWED", "MUTATE", "op-1")
        assert audit_logger.read_recent(count) == []


class TestRotation:
    def _age(self, path, days):
        old = time.time() - days * 86400
        os.utime(path, (old, old))

    def test_rotates_old_file(self, audit_logger):
        audit_logger.log_event("ALLOWED", "UNLOCK")
        self._age(audit_logger.log_path, 2)
        mtime = datetime.fromtimestamp(audit_logger.log_path.stat().st_mtime, tz=timezone.utc)
        audit_logger._last_rotation_check = None

        audit_logger.log_event("ALLOWED", "LOCK")

        rotated = audit_logger.log_path.with_name("access.log." + mtime.strftime("%Y%m%d"))
        assert rotated.exists()
        assert "UNLOCK" in rotated.read_text()
        assert "UNLOCK" not in audit_logger.log_path.read_text()
        assert "LOCK" in audit_logger.log_path.read_text()

    def test_rotation_checked_hourly(self, audit_logger):
        audit_logger.log_event("ALLOWED", "UNLOCK")
        self._age(audit_logger.log_path, 2)
        audit_logger._last_rotation_check = datetime.now(timezone.utc)

        audit_logger.log_event("ALLOWED", "LOCK")

        assert list(audit_logger.log_path.parent.glob("access.log.*")) == []

    def test_cleanup_old_logs(self, audit_logger):
        old_date = datetime.now(timezone.utc) - timedelta(days=45)
        recent_date = datetime.now(timezone.utc) - timedelta(days=3)
        old_log = audit_logger.log_path.with_name("access.log." + old_date.strftime("%Y%m%d"))
        recent_log = audit_logger.log_path.with_name("access.log." + recent_date.strftime("%Y%m%d"))
        stray = audit_logger.log_path.with_name("access.log.backup")
        for path in (old_log, recent_log, stray):
            path.write_text("x\n")

        audit_logger._cleanup_old_logs()

        assert not old_log.exists()
        assert recent_log.exists()
        assert stray.exists()
