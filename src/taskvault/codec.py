#!/usr/bin/env python3
"""Vault Codec - JSON serialization of the vault document.

Encoding is canonical (sorted keys, compact separators, sorted tags) so the
same document always produces the same bytes. Decoding fills documented
defaults for missing optional parts and rejects structurally impossible
documents instead of coercing them.
"""

import json
from typing import Any, Dict

from .errors import MalformedDocument
from .models import (
    DEFAULT_PRIORITY,
    DOCUMENT_VERSION,
    STATUS_BACKLOG,
    TASK_PRIORITIES,
    TASK_STATUSES,
    ActivityEntry,
    DocumentMeta,
    Goal,
    Note,
    Task,
    VaultDocument,
    utc_now,
)


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "owner": task.owner,
        "priority": task.priority,
        "tags": sorted(task.tags),
        "createdAt": task.created_at,
        "updatedAt": task.updated_at,
        "doneAt": task.done_at,
    }


def note_to_dict(note: Note) -> Dict[str, Any]:
    return {
        "id": note.id,
        "title": note.title,
        "body": note.body,
        "tags": sorted(note.tags),
        "updatedAt": note.updated_at,
    }


def goal_to_dict(goal: Goal) -> Dict[str, Any]:
    return {
        "title": goal.title,
        "deadline": goal.deadline,
        "current": goal.current,
        "target": goal.target,
        "notes": goal.notes,
    }


def document_to_dict(document: VaultDocument) -> Dict[str, Any]:
    """Convert a document to plain JSON-compatible data."""
    return {
        "meta": {
            "version": document.meta.version,
            "createdAt": document.meta.created_at,
            "updatedAt": document.meta.updated_at,
        },
        "tasks": [task_to_dict(t) for t in document.tasks],
        "notes": [note_to_dict(n) for n in document.notes],
        "activity": [
            {"id": e.id, "time": e.time, "text": e.text}
            for e in document.activity
        ],
        "goals": {name: goal_to_dict(g) for name, g in document.goals.items()},
    }


def encode_document(document: VaultDocument) -> bytes:
    """Serialize the full document to canonical UTF-8 JSON bytes."""
    return json.dumps(
        document_to_dict(document),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


# ============================================================================
# Decoding
# ============================================================================

def _require_object(value, where):
    if not isinstance(value, dict):
        raise MalformedDocument(f"{where} must be an object")
    return value


def _or_empty(value):
    return {} if value is None else value


def _require_list(value, where):
    if not isinstance(value, list):
        raise MalformedDocument(f"{where} must be a list")
    return value


def _string(obj, key, where, default=None, required=False):
    if key not in obj or obj[key] is None:
        if required:
            raise MalformedDocument(f"{where}: missing required field '{key}'")
        return default
    value = obj[key]
    if not isinstance(value, str):
        raise MalformedDocument(f"{where}: '{key}' must be a string")
    return value


def _number(obj, key, where, default=0):
    value = obj.get(key, default)
    if value is None:
        return default
    # bool is an int subclass but never a valid quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedDocument(f"{where}: '{key}' must be a number")
    return value


def _tags(obj, where):
    tags = obj.get("tags")
    if tags is None:
        return set()
    _require_list(tags, f"{where}.tags")
    if not all(isinstance(t, str) for t in tags):
        raise MalformedDocument(f"{where}.tags must contain strings")
    return set(tags)


def _check_unique(items, where):
    seen = set()
    for item in items:
        if item.id in seen:
            raise MalformedDocument(f"{where}: duplicate id '{item.id}'")
        seen.add(item.id)


def task_from_dict(obj, where="task") -> Task:
    _require_object(obj, where)
    status = _string(obj, "status", where, default=STATUS_BACKLOG)
    if status not in TASK_STATUSES:
        raise MalformedDocument(f"{where}: unknown status '{status}'")
    priority = _string(obj, "priority", where, default=DEFAULT_PRIORITY)
    if priority not in TASK_PRIORITIES:
        raise MalformedDocument(f"{where}: unknown priority '{priority}'")

    return Task(
        id=_string(obj, "id", where, required=True),
        title=_string(obj, "title", where, required=True),
        description=_string(obj, "description", where, default=""),
        status=status,
        owner=_string(obj, "owner", where, default=""),
        priority=priority,
        tags=_tags(obj, where),
        created_at=_string(obj, "createdAt", where, default=""),
        updated_at=_string(obj, "updatedAt", where, default=""),
        done_at=_string(obj, "doneAt", where, default=None),
    )


def note_from_dict(obj, where="note") -> Note:
    _require_object(obj, where)
    return Note(
        id=_string(obj, "id", where, required=True),
        title=_string(obj, "title", where, required=True),
        body=_string(obj, "body", where, default=""),
        tags=_tags(obj, where),
        updated_at=_string(obj, "updatedAt", where, default=""),
    )


def goal_from_dict(obj, where="goal") -> Goal:
    _require_object(obj, where)
    return Goal(
        title=_string(obj, "title", where, default=""),
        deadline=_string(obj, "deadline", where, default=""),
        current=_number(obj, "current", where),
        target=_number(obj, "target", where),
        notes=_string(obj, "notes", where, default=""),
    )


def document_from_dict(obj) -> VaultDocument:
    """Validate parsed JSON and build a VaultDocument.

    Defaults: missing meta gets the current version and time, missing
    tasks/notes/activity are empty, missing goals get an empty primary goal.

    Raises:
        MalformedDocument: If the structure cannot be a vault document

    """
    _require_object(obj, "document")

    meta_obj = _require_object(_or_empty(obj.get("meta")), "meta")
    version = meta_obj.get("version", DOCUMENT_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        raise MalformedDocument("meta.version must be an integer")
    if version > DOCUMENT_VERSION:
        raise MalformedDocument(f"Unsupported document version: {version}")
    now = utc_now()
    created_at = _string(meta_obj, "createdAt", "meta", default=now)
    meta = DocumentMeta(
        version=DOCUMENT_VERSION,
        created_at=created_at,
        updated_at=_string(meta_obj, "updatedAt", "meta", default=created_at),
    )

    tasks = [
        task_from_dict(t, f"tasks[{i}]")
        for i, t in enumerate(_require_list(obj.get("tasks", []), "tasks"))
    ]
    _check_unique(tasks, "tasks")

    notes = [
        note_from_dict(n, f"notes[{i}]")
        for i, n in enumerate(_require_list(obj.get("notes", []), "notes"))
    ]
    _check_unique(notes, "notes")

    activity = []
    for i, entry in enumerate(_require_list(obj.get("activity", []), "activity")):
        where = f"activity[{i}]"
        _require_object(entry, where)
        activity.append(ActivityEntry(
            id=_string(entry, "id", where, required=True),
            time=_string(entry, "time", where, required=True),
            text=_string(entry, "text", where, required=True),
        ))

    goals_obj = _require_object(_or_empty(obj.get("goals")), "goals")
    goals = {
        name: goal_from_dict(g, f"goals.{name}")
        for name, g in goals_obj.items()
    }
    goals.setdefault("primary", Goal())

    return VaultDocument(
        meta=meta, tasks=tasks, notes=notes, activity=activity, goals=goals
    )


def decode_document(data: bytes) -> VaultDocument:
    """Parse bytes produced by encode_document.

    Raises:
        MalformedDocument: If data is not valid UTF-8 JSON or fails validation

    """
    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise MalformedDocument("Document is not valid JSON") from None
    return document_from_dict(obj)


# ============================================================================
# Export / import envelope
# ============================================================================

def export_envelope(document: VaultDocument, exported_at=None) -> Dict[str, Any]:
    """Wrap a document for saving outside the vault."""
    return {
        "meta": {
            "exportedAt": exported_at or utc_now(),
            "version": DOCUMENT_VERSION,
        },
        "vault": document_to_dict(document),
    }


def document_from_envelope(envelope) -> VaultDocument:
    """Extract and validate the document inside an export envelope.

    Raises:
        MalformedDocument: If the envelope or its vault field is invalid

    """
    _require_object(envelope, "export")
    if "vault" not in envelope:
        raise MalformedDocument("Missing required field: vault")
    return document_from_dict(envelope["vault"])
