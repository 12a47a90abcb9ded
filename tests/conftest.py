"""Pytest fixtures and utilities for taskvault tests."""

import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from taskvault.audit import AuditLogger
from taskvault.lifecycle import VaultSession
from taskvault.models import Goal, Note, Task, append_activity, new_document
from taskvault.store import MemoryVaultStore, SqliteVaultStore

TEST_PASSWORD = "hunters2"


@pytest.fixture
def temp_vault_dir():
    """Create a temporary directory for vault files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def memory_store():
    return MemoryVaultStore()


@pytest.fixture
def sqlite_store(temp_vault_dir):
    return SqliteVaultStore(temp_vault_dir / "vault.db")


@pytest.fixture
def audit_logger(temp_vault_dir):
    """Create an audit logger with temp log path."""
    log_path = temp_vault_dir / "access.log"
    yield AuditLogger(log_path)


@pytest.fixture
def session(memory_store):
    """A freshly created, unlocked vault over an in-memory store."""
    vault_session = VaultSession(memory_store)
    vault_session.create(TEST_PASSWORD, TEST_PASSWORD)
    yield vault_session
    vault_session.lock()


@pytest.fixture
def sample_document():
    """A document with a bit of everything in it."""
    document = new_document("2026-01-01T00:00:00+00:00")

    document.tasks.append(Task(
        id="task-1",
        title="Write report",
        description="Quarterly numbers",
        status="in_progress",
        owner="sam",
        priority="A",
        tags={"work", "q1"},
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-02T00:00:00+00:00",
    ))
    document.tasks.append(Task(
        id="task-2",
        title="Ship release",
        status="done",
        created_at="2026-01-01T00:00:00+00:00",
        updated_at="2026-01-03T00:00:00+00:00",
        done_at="2026-01-03T00:00:00+00:00",
    ))
    document.notes.append(Note(
        id="note-1",
        title="Ideas",
        body="# Ideas\n\n- одна\n- two",
        tags={"misc"},
        updated_at="2026-01-02T00:00:00+00:00",
    ))
    document.goals["primary"] = Goal(
        title="Save up", deadline="end of year", current=250, target=10000, notes="steady"
    )
    append_activity(document, "Task created: Write report", "2026-01-01T00:00:00+00:00")
    return document


@pytest.fixture
def reopen():
    """Return a helper that unlocks a store with a brand-new session and returns its document."""
    def _reopen(store, password=TEST_PASSWORD):
        fresh = VaultSession(store)
        fresh.unlock(password)
        document = fresh.document
        fresh.lock()
        return document
    return _reopen
