#!/usr/bin/env python3
"""Seed Data - One-time initial content merged into a new vault.

A seed is two independently fetched JSON documents: a task list and a
notes/goals set. Either may be missing or broken; creation then proceeds
with empty defaults for that half.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .codec import goal_from_dict, note_from_dict, task_from_dict
from .errors import MalformedDocument
from .models import (
    STATUS_BACKLOG,
    STATUS_BLOCKED,
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    Goal,
    Note,
    Task,
    generate_id,
)

TASKS_FILE = "tasks.json"
NOTES_FILE = "notes.json"

# Column names used by older grouped task files
COLUMN_STATUS = {
    "waiting": STATUS_BLOCKED,
    "blocked": STATUS_BLOCKED,
    "planned": STATUS_BACKLOG,
    "backlog": STATUS_BACKLOG,
    "in_progress": STATUS_IN_PROGRESS,
    "done": STATUS_DONE,
}


@dataclass
class Seed:
    tasks: List[Task] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    goal: Optional[Goal] = None
    errors: List[str] = field(default_factory=list)


class SeedSource:
    """Supplies the two seed documents as parsed JSON."""

    def fetch_tasks(self):
        raise NotImplementedError

    def fetch_notes(self):
        raise NotImplementedError


class DirectorySeedSource(SeedSource):
    """Reads tasks.json and notes.json from a directory."""

    def __init__(self, seed_dir):
        self.seed_dir = Path(seed_dir)

    def _read(self, name):
        with open(self.seed_dir / name, encoding="utf-8") as f:
            return json.load(f)

    def fetch_tasks(self):
        return self._read(TASKS_FILE)

    def fetch_notes(self):
        return self._read(NOTES_FILE)


def _with_id(obj: Dict, kind: str) -> Dict:
    obj = dict(obj)
    if not obj.get("id"):
        obj["id"] = generate_id(kind)
    return obj


def parse_seed_tasks(obj, now) -> List[Task]:
    """Accept a list of tasks or a mapping of column name to task list."""
    if isinstance(obj, dict) and "tasks" in obj:
        obj = obj["tasks"]

    if isinstance(obj, list):
        raw = [(None, t) for t in obj]
    elif isinstance(obj, dict):
        raw = []
        for column, items in obj.items():
            if column not in COLUMN_STATUS:
                raise MalformedDocument(f"Unknown task column: {column}")
            if not isinstance(items, list):
                raise MalformedDocument(f"Task column {column} must be a list")
            raw.extend((COLUMN_STATUS[column], t) for t in items)
    else:
        raise MalformedDocument("Seed tasks must be a list or an object")

    tasks = []
    for i, (status, item) in enumerate(raw):
        if not isinstance(item, dict):
            raise MalformedDocument(f"seed tasks[{i}] must be an object")
        item = _with_id(item, "task")
        if "desc" in item and "description" not in item:
            item["description"] = item.pop("desc")
        if status:
            item.setdefault("status", status)
        # Older files show "date" on finished tasks only; elsewhere it is not a completion time
        date = item.pop("date", None)
        if date is not None and item.get("status") == STATUS_DONE:
            item.setdefault("doneAt", date)
        item.setdefault("createdAt", now)
        item.setdefault("updatedAt", now)

        task = task_from_dict(item, f"seed tasks[{i}]")
        if task.status == STATUS_DONE and task.done_at is None:
            task.done_at = now
        tasks.append(task)
    return tasks


def parse_seed_notes(obj, now):
    """Return (notes, goal) from a notes/goals seed document."""
    if not isinstance(obj, dict):
        raise MalformedDocument("Seed notes must be an object")

    notes = []
    raw_notes = obj.get("notes", [])
    if not isinstance(raw_notes, list):
        raise MalformedDocument("Seed notes must be a list")
    for i, item in enumerate(raw_notes):
        if not isinstance(item, dict):
            raise MalformedDocument(f"seed notes[{i}] must be an object")
        item = _with_id(item, "note")
        item.setdefault("updatedAt", now)
        notes.append(note_from_dict(item, f"seed notes[{i}]"))

    goal = None
    goals = obj.get("goals")
    if isinstance(goals, dict) and goals.get("primary") is not None:
        goal = goal_from_dict(goals["primary"], "seed goals.primary")
    elif isinstance(obj.get("goal"), dict):
        # Legacy dashboard shape: {"goal": {"title", "milestones": [{"current", "target"}]}}
        legacy = obj["goal"]
        milestones = legacy.get("milestones") or [{}]
        if not isinstance(milestones, list) or not isinstance(milestones[0], dict):
            raise MalformedDocument("Seed goal milestones must be a list of objects")
        merged = {k: v for k, v in legacy.items() if k in ("title", "deadline", "notes")}
        merged.update({k: milestones[0][k] for k in ("current", "target") if k in milestones[0]})
        goal = goal_from_dict(merged, "seed goal")

    return notes, goal


def load_seed(source: SeedSource, now) -> Seed:
    """Fetch both halves independently. Failures become empty defaults.

    Args:
        source: Where the seed documents come from
        now: ISO timestamp stamped on seeded entities

    Returns:
        Seed with whatever could be loaded; `errors` lists what could not

    """
    seed = Seed()

    try:
        seed.tasks = parse_seed_tasks(source.fetch_tasks(), now)
    except (OSError, ValueError, MalformedDocument) as e:
        seed.errors.append(f"tasks: {e}")

    try:
        seed.notes, seed.goal = parse_seed_notes(source.fetch_notes(), now)
    except (OSError, ValueError, MalformedDocument) as e:
        seed.errors.append(f"notes: {e}")

    return seed


def merge_seed(document, seed: Seed) -> None:
    """Union seed entities into document by id. Existing ids win."""
    task_ids = {t.id for t in document.tasks}
    for task in seed.tasks:
        if task.id not in task_ids:
            document.tasks.append(task)
            task_ids.add(task.id)

    note_ids = {n.id for n in document.notes}
    for note in seed.notes:
        if note.id not in note_ids:
            document.notes.append(note)
            note_ids.add(note.id)

    if seed.goal is not None:
        document.goals["primary"] = seed.goal
