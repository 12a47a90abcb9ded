#!/usr/bin/env python3
"""Vault Document - Plaintext data model held by an unlocked session.

Tasks, notes, goals and the bounded activity log, plus the rules that keep
them consistent (doneAt set once, activity capped, stable ids).
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

DOCUMENT_VERSION = 1
ACTIVITY_LIMIT = 500

STATUS_BACKLOG = "backlog"
STATUS_IN_PROGRESS = "in_progress"
STATUS_BLOCKED = "blocked"
STATUS_DONE = "done"
TASK_STATUSES = (STATUS_BACKLOG, STATUS_IN_PROGRESS, STATUS_BLOCKED, STATUS_DONE)

TASK_PRIORITIES = ("A", "B", "C")
DEFAULT_PRIORITY = "B"


def utc_now():
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def generate_id(kind):
    """Generate a fresh identifier, e.g. "task-3f2a..."."""
    return f"{kind}-{uuid.uuid4().hex}"


@dataclass
class Task:
    """A kanban task."""

    id: str
    title: str
    description: str = ""
    status: str = STATUS_BACKLOG
    owner: str = ""
    priority: str = DEFAULT_PRIORITY
    tags: Set[str] = field(default_factory=set)
    created_at: str = ""
    updated_at: str = ""
    done_at: Optional[str] = None

    def set_status(self, status, now):
        """Change status. doneAt is stamped on the first move to done only."""
        self.status = status
        if status == STATUS_DONE and self.done_at is None:
            self.done_at = now
        self.updated_at = now


@dataclass
class Note:
    """A markdown note. The body is stored raw."""

    id: str
    title: str
    body: str = ""
    tags: Set[str] = field(default_factory=set)
    updated_at: str = ""


@dataclass
class ActivityEntry:
    id: str
    time: str
    text: str


@dataclass
class Goal:
    title: str = ""
    deadline: str = ""
    current: float = 0
    target: float = 0
    notes: str = ""


@dataclass
class DocumentMeta:
    version: int = DOCUMENT_VERSION
    created_at: str = ""
    updated_at: str = ""


@dataclass
class VaultDocument:
    """The whole plaintext vault."""

    meta: DocumentMeta = field(default_factory=DocumentMeta)
    tasks: List[Task] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    activity: List[ActivityEntry] = field(default_factory=list)
    goals: Dict[str, Goal] = field(default_factory=lambda: {"primary": Goal()})

    @property
    def primary_goal(self) -> Goal:
        return self.goals.setdefault("primary", Goal())

    def find_task(self, task_id) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def find_note(self, note_id) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None


def new_document(now=None):
    """Create an empty document stamped with the current time."""
    now = now or utc_now()
    return VaultDocument(meta=DocumentMeta(created_at=now, updated_at=now))


def append_activity(document, text, now=None):
    """Record an activity entry, newest first, keeping at most ACTIVITY_LIMIT."""
    entry = ActivityEntry(id=generate_id("act"), time=now or utc_now(), text=text)
    document.activity.insert(0, entry)
    del document.activity[ACTIVITY_LIMIT:]
    return entry


def dashboard_stats(document, now=None):
    """Summary figures for the dashboard header.

    Args:
        document: VaultDocument to summarize
        now: Optional datetime used as "today"

    Returns:
        Dict with per-status counts, totals, days active and goal progress

    """
    now = now or datetime.now(timezone.utc)

    by_status = {status: 0 for status in TASK_STATUSES}
    for task in document.tasks:
        by_status[task.status] = by_status.get(task.status, 0) + 1

    days_active = 1
    if document.meta.created_at:
        try:
            created = datetime.fromisoformat(document.meta.created_at)
            if created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            days_active = max(1, (now - created).days + 1)
        except ValueError:
            pass

    goal = document.primary_goal
    if goal.target:
        progress = min(100.0, max(0.0, goal.current / goal.target * 100))
    else:
        progress = 0.0

    return {
        "tasks_total": len(document.tasks),
        "tasks_by_status": by_status,
        "tasks_done": by_status[STATUS_DONE],
        "notes": len(document.notes),
        "days_active": days_active,
        "goal_title": goal.title,
        "goal_progress": round(progress, 1),
        "last_update": document.meta.updated_at,
    }
