#!/usr/bin/env python3
"""Access Log - Plaintext-free record of vault lifecycle events.

Lines look like: ISO8601Z RESULT ACTION [detail] [reason]. Only event kinds
and operation names are written, never titles or document content.
"""

import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

RESULTS = ("ALLOWED", "DENIED", "ERROR")


class AuditLogger:
    """Append-only event log with daily rotation and retention."""

    def __init__(self, log_path: Path, retention_days: int = 30):
        """Initialize the logger.

        Args:
            log_path: Path to the log file (e.g., ~/.taskvault/access.log)
            retention_days: Number of days to keep rotated logs

        """
        self.log_path = Path(log_path)
        self.retention_days = retention_days
        self.lock = threading.Lock()
        self._last_rotation_check: Optional[datetime] = None

        if not self.log_path.parent.exists():
            self.log_path.parent.mkdir(parents=True)
            self.log_path.parent.chmod(0o700)

        if not self.log_path.exists():
            fd = os.open(
                str(self.log_path),
                os.O_CREAT | os.O_APPEND | os.O_WRONLY,
                0o600
            )
            os.close(fd)

    def log_event(
        self,
        result: str,
        action: str,
        detail: Optional[str] = None,
        reason: Optional[str] = None
    ) -> None:
        """Append one event line.

        Args:
            result: ALLOWED | DENIED | ERROR
            action: CREATE | UNLOCK | LOCK | MUTATE | IMPORT | EXPORT
            detail: Optional non-sensitive detail (operation name, entity id)
            reason: Optional reason for DENIED/ERROR

        """
        if result not in RESULTS:
            raise ValueError(f"Unknown result: {result}")

        self._check_rotation()

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        parts = [timestamp, result, action, detail or "-"]
        if reason:
            parts.append(reason)

        with self.lock, open(self.log_path, "a") as f:
            f.write(" ".join(parts) + "\n")

    def _rotated_prefix(self) -> str:
        return self.log_path.name + "."

    def _check_rotation(self) -> None:
        """Rotate at most once per hour, when the file predates today (UTC)."""
        now = datetime.now(timezone.utc)

        if self._last_rotation_check:
            if (now - self._last_rotation_check).total_seconds() < 3600:
                return
        self._last_rotation_check = now

        if not self.log_path.exists():
            return

        try:
            mtime = datetime.fromtimestamp(self.log_path.stat().st_mtime, tz=timezone.utc)
        except OSError:
            return

        if mtime < now.replace(hour=0, minute=0, second=0, microsecond=0):
            self._rotate(mtime)
            self._cleanup_old_logs()

    def _rotate(self, mtime: datetime) -> None:
        rotated_path = self.log_path.with_name(
            self._rotated_prefix() + mtime.strftime("%Y%m%d")
        )
        if rotated_path.exists():
            return
        try:
            self.log_path.rename(rotated_path)
        except OSError:
            return

        fd = os.open(str(self.log_path), os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
        os.close(fd)

    def _cleanup_old_logs(self) -> None:
        """Remove rotated logs older than the retention period."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=self.retention_days)

        for log_file in self.log_path.parent.glob(self._rotated_prefix() + "*"):
            try:
                log_date = datetime.strptime(
                    log_file.name.rsplit(".", 1)[-1], "%Y%m%d"
                ).replace(tzinfo=timezone.utc)
            except ValueError:
                # Not one of ours
                continue
            if log_date < cutoff:
                try:
                    log_file.unlink()
                except OSError:
                    pass

    def read_recent(self, lines: int = 100) -> List[str]:
        """Return up to `lines` most recent lines (most recent last)."""
        if lines <= 0 or not self.log_path.exists():
            return []
        with open(self.log_path) as f:
            return f.readlines()[-lines:]
