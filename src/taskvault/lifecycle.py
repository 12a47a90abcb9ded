#!/usr/bin/env python3
"""Vault Session - Lifecycle and mutation model for the encrypted vault.

A session moves through four states:

    locked --create--> creating --> unlocked
    locked --unlock--> unlocked | failed
    unlocked --lock--> locked
    failed --reset--> locked

While unlocked, every mutation is applied to a copy of the document, logged
in the activity trail, re-encrypted as a whole and written to the store.
Only after the write succeeds does the copy become the working document, so
memory and storage never disagree.
"""

import copy
import threading
from typing import Callable, Optional

from . import crypto
from .codec import decode_document, document_from_envelope, encode_document, export_envelope
from .errors import (
    AuthenticationFailure,
    ConfirmationRequired,
    EmptyPassword,
    EntityNotFound,
    InvalidValue,
    MalformedDocument,
    PasswordMismatch,
    StorageError,
    UnlockFailed,
    VaultStateError,
)
from .models import (
    DEFAULT_PRIORITY,
    DOCUMENT_VERSION,
    STATUS_BACKLOG,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Goal,
    Note,
    Task,
    VaultDocument,
    append_activity,
    dashboard_stats,
    generate_id,
    new_document,
    utc_now,
)
from .seed import Seed, merge_seed
from .store import VaultMetadata, VaultStore

STATE_LOCKED = "locked"
STATE_CREATING = "creating"
STATE_UNLOCKED = "unlocked"
STATE_FAILED = "failed"

GOAL_FIELDS = ("title", "deadline", "current", "target", "notes")


def _check_status(status):
    if status not in TASK_STATUSES:
        raise InvalidValue(f"Unknown status '{status}' (expected one of: {', '.join(TASK_STATUSES)})")


def _check_priority(priority):
    if priority not in TASK_PRIORITIES:
        raise InvalidValue(f"Unknown priority '{priority}' (expected one of: {', '.join(TASK_PRIORITIES)})")


def _check_string(value, name, required=False):
    if not isinstance(value, str):
        raise InvalidValue(f"{name} must be a string")
    if required and not value:
        raise InvalidValue(f"{name} must not be empty")


def _tag_set(tags):
    """Validate tags and return them as a set of strings."""
    if isinstance(tags, str):
        raise InvalidValue("Tags must be a list of strings, not a single string")
    try:
        tags = list(tags)
    except TypeError:
        raise InvalidValue("Tags must be a list of strings") from None
    if not all(isinstance(t, str) for t in tags):
        raise InvalidValue("Tags must be strings")
    return set(tags)


class VaultSession:
    """Owns the key and the decrypted document for one unlocked session."""

    def __init__(self, store: VaultStore, audit_logger=None):
        self.store = store
        self.audit_logger = audit_logger
        self.state = STATE_LOCKED
        self.mutex = threading.RLock()
        self._key: Optional[bytes] = None
        self._document: Optional[VaultDocument] = None

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _audit(self, result, action, detail=None, reason=None):
        if self.audit_logger:
            self.audit_logger.log_event(result, action, detail, reason)

    def _require_state(self, *states):
        if self.state not in states:
            raise VaultStateError(f"Vault is {self.state}")

    def _claim_store(self):
        if self.store.owner is not None and self.store.owner is not self:
            raise VaultStateError("Vault is already unlocked by another session")
        self.store.owner = self

    def _release_store(self):
        if self.store.owner is self:
            self.store.owner = None

    def needs_creation(self) -> bool:
        """True when the store holds no vault blob yet (first run)."""
        return self.store.read_blob() is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, password: str, password_confirm: str, seed: Optional[Seed] = None):
        """Create a new vault and leave the session unlocked.

        Args:
            password: Master password
            password_confirm: Same password typed again
            seed: Optional initial tasks/notes/goal merged once

        Raises:
            EmptyPassword: If password is empty (store untouched)
            PasswordMismatch: If the two entries differ (store untouched)
            VaultStateError: If a vault already exists or the session is not locked
            StorageError: If the store cannot be written

        """
        with self.mutex:
            self._require_state(STATE_LOCKED)
            if not password:
                raise EmptyPassword()
            if password != password_confirm:
                raise PasswordMismatch()
            if not self.needs_creation():
                raise VaultStateError("Vault already exists")
            self._claim_store()

            self.state = STATE_CREATING
            try:
                salt = crypto.generate_salt()
                key = crypto.derive_key(password, salt)

                now = utc_now()
                document = new_document(now)
                if seed is not None:
                    merge_seed(document, seed)
                append_activity(
                    document,
                    f"Vault created ({len(document.tasks)} tasks, {len(document.notes)} notes)",
                    now,
                )

                # Metadata first: a blob is only meaningful alongside its salt
                self.store.write_metadata(VaultMetadata(version=DOCUMENT_VERSION, salt=salt))
                self._write(key, document)
            except Exception:
                self.state = STATE_LOCKED
                self._release_store()
                self._audit("ERROR", "CREATE", reason="create-failed")
                raise

            self._key = key
            self._document = document
            self.state = STATE_UNLOCKED
            self._audit("ALLOWED", "CREATE")
            return self.state

    def unlock(self, password: str):
        """Unlock an existing vault.

        Raises:
            EmptyPassword: If password is empty (attempt abandoned, state unchanged)
            UnlockFailed: For any wrong password, missing record, corruption or
                tampering. The session moves to `failed`.
            VaultStateError: If the session is not locked

        """
        with self.mutex:
            self._require_state(STATE_LOCKED)
            if not password:
                raise EmptyPassword()
            self._claim_store()

            try:
                metadata = self.store.read_metadata()
                blob = self.store.read_blob()
                # Missing records still pay for a derivation so every failure costs the same
                salt = metadata.salt if metadata is not None else bytes(crypto.SALT_SIZE)
                key = crypto.derive_key(password, salt)
                if metadata is None or blob is None:
                    raise AuthenticationFailure()
                document = decode_document(crypto.decrypt_blob(key, blob))
            except Exception:
                # Any cause, including unexpected ones from a tampered store, is reported the same way
                self.state = STATE_FAILED
                self._release_store()
                self._audit("DENIED", "UNLOCK", reason="unlock-failed")
                raise UnlockFailed() from None

            self._key = key
            self._document = document
            self.state = STATE_UNLOCKED
            self._audit("ALLOWED", "UNLOCK")
            return self.state

    def lock(self):
        """Discard key and document. Safe to call in any state."""
        with self.mutex:
            was_unlocked = self.state == STATE_UNLOCKED
            self._key = None
            self._document = None
            self._release_store()
            self.state = STATE_LOCKED
            if was_unlocked:
                self._audit("ALLOWED", "LOCK")
            return self.state

    def reset(self):
        """Leave the failed state so the caller can prompt again."""
        with self.mutex:
            self._require_state(STATE_FAILED, STATE_LOCKED)
            self.state = STATE_LOCKED
            return self.state

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _write(self, key, document):
        """Encode, encrypt with a fresh nonce and overwrite the stored blob."""
        self.store.write_blob(crypto.encrypt_blob(key, encode_document(document)))

    def _check_readable(self, document):
        """Reject a document that decode would refuse on the next unlock."""
        try:
            decode_document(encode_document(document))
        except (MalformedDocument, TypeError, ValueError) as e:
            raise InvalidValue(f"Change rejected: {e}") from None

    def mutate(self, change: Callable[[VaultDocument], str], action: str = "mutate"):
        """Apply a change, log it, persist it, then adopt it.

        Args:
            change: Callable that edits the document in place and returns the
                activity text describing the change
            action: Short operation name for the access log

        Returns:
            The updated document (a copy)

        Raises:
            VaultStateError: If the vault is not unlocked
            InvalidValue: If the change left the document in a shape that
                could not be read back (nothing is written)
            StorageError: If persisting fails (nothing changes)

        """
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            working = copy.deepcopy(self._document)

            text = change(working)
            _check_string(text, "Activity text", required=True)
            now = utc_now()
            append_activity(working, text, now)
            working.meta.updated_at = now
            self._check_readable(working)

            try:
                self._write(self._key, working)
            except StorageError:
                self._audit("ERROR", "MUTATE", action, reason="storage")
                raise

            self._document = working
            self._audit("ALLOWED", "MUTATE", action)
            return copy.deepcopy(working)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def document(self) -> VaultDocument:
        """A snapshot of the working document. Edits to it are not persisted."""
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            return copy.deepcopy(self._document)

    def get_task(self, task_id) -> Task:
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            task = self._document.find_task(task_id)
            if task is None:
                raise EntityNotFound(f"Task not found: {task_id}")
            return copy.deepcopy(task)

    def get_note(self, note_id) -> Note:
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            note = self._document.find_note(note_id)
            if note is None:
                raise EntityNotFound(f"Note not found: {note_id}")
            return copy.deepcopy(note)

    def stats(self):
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            return dashboard_stats(self._document)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(self, title, description="", status=STATUS_BACKLOG, owner="",
                 priority=DEFAULT_PRIORITY, tags=()):
        """Create a task and return it."""
        _check_string(title, "Task title", required=True)
        _check_string(description, "Task description")
        _check_string(owner, "Task owner")
        _check_status(status)
        _check_priority(priority)
        tags = _tag_set(tags)

        now = utc_now()
        task = Task(
            id=generate_id("task"),
            title=title,
            description=description,
            owner=owner,
            priority=priority,
            tags=tags,
            created_at=now,
            updated_at=now,
        )
        task.set_status(status, now)

        def change(document):
            document.tasks.append(copy.deepcopy(task))
            return f"Task created: {title}"

        self.mutate(change, "task-add")
        return task

    def update_task(self, task_id, title=None, description=None, owner=None,
                    priority=None, tags=None, status=None):
        """Edit task fields. None leaves a field unchanged.

        Editing non-status fields never touches doneAt.
        """
        if title is not None:
            _check_string(title, "Task title", required=True)
        if description is not None:
            _check_string(description, "Task description")
        if owner is not None:
            _check_string(owner, "Task owner")
        if tags is not None:
            tags = _tag_set(tags)
        if status is not None:
            _check_status(status)
        if priority is not None:
            _check_priority(priority)

        def change(document):
            task = document.find_task(task_id)
            if task is None:
                raise EntityNotFound(f"Task not found: {task_id}")
            now = utc_now()
            if title is not None:
                task.title = title
            if description is not None:
                task.description = description
            if owner is not None:
                task.owner = owner
            if priority is not None:
                task.priority = priority
            if tags is not None:
                task.tags = set(tags)
            if status is not None and status != task.status:
                task.set_status(status, now)
            task.updated_at = now
            return f"Task updated: {task.title}"

        return self.mutate(change, "task-edit").find_task(task_id)

    def move_task(self, task_id, status):
        """Move a task to another kanban column."""
        _check_status(status)

        def change(document):
            task = document.find_task(task_id)
            if task is None:
                raise EntityNotFound(f"Task not found: {task_id}")
            previous = task.status
            task.set_status(status, utc_now())
            return f"Task moved: {task.title} ({previous} -> {status})"

        return self.mutate(change, "task-move").find_task(task_id)

    def delete_task(self, task_id):
        def change(document):
            task = document.find_task(task_id)
            if task is None:
                raise EntityNotFound(f"Task not found: {task_id}")
            document.tasks.remove(task)
            return f"Task deleted: {task.title}"

        self.mutate(change, "task-delete")

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def add_note(self, title, body="", tags=()):
        _check_string(title, "Note title", required=True)
        _check_string(body, "Note body")
        tags = _tag_set(tags)
        note = Note(
            id=generate_id("note"),
            title=title,
            body=body,
            tags=tags,
            updated_at=utc_now(),
        )

        def change(document):
            document.notes.append(copy.deepcopy(note))
            return f"Note created: {title}"

        self.mutate(change, "note-add")
        return note

    def update_note(self, note_id, title=None, body=None, tags=None):
        if title is not None:
            _check_string(title, "Note title", required=True)
        if body is not None:
            _check_string(body, "Note body")
        if tags is not None:
            tags = _tag_set(tags)

        def change(document):
            note = document.find_note(note_id)
            if note is None:
                raise EntityNotFound(f"Note not found: {note_id}")
            if title is not None:
                note.title = title
            if body is not None:
                note.body = body
            if tags is not None:
                note.tags = set(tags)
            note.updated_at = utc_now()
            return f"Note updated: {note.title}"

        return self.mutate(change, "note-edit").find_note(note_id)

    def delete_note(self, note_id):
        def change(document):
            note = document.find_note(note_id)
            if note is None:
                raise EntityNotFound(f"Note not found: {note_id}")
            document.notes.remove(note)
            return f"Note deleted: {note.title}"

        self.mutate(change, "note-delete")

    # ------------------------------------------------------------------
    # Goal and activity
    # ------------------------------------------------------------------

    def update_goal(self, **fields) -> Goal:
        """Update the primary goal. Accepts title, deadline, current, target, notes."""
        for name, value in fields.items():
            if name not in GOAL_FIELDS:
                raise InvalidValue(f"Unknown goal field: {name}")
            if name in ("current", "target"):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise InvalidValue(f"Goal {name} must be a number")
            elif not isinstance(value, str):
                raise InvalidValue(f"Goal {name} must be a string")

        def change(document):
            goal = document.primary_goal
            for name, value in fields.items():
                setattr(goal, name, value)
            return f"Goal updated: {goal.title or 'primary'}"

        return self.mutate(change, "goal").primary_goal

    def log_activity(self, text):
        """Append a free-form entry to the activity log."""
        _check_string(text, "Activity text", required=True)
        self.mutate(lambda document: text, "activity")

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def export_document(self):
        """Return a plaintext export envelope of the current document.

        The export itself is recorded in the activity log and persisted
        before the snapshot is taken.
        """
        document = self.mutate(lambda d: "Vault exported", "export")
        self._audit("ALLOWED", "EXPORT")
        return export_envelope(document)

    def import_document(self, envelope, confirmed=False):
        """Replace the whole document with the one inside an export envelope.

        Raises:
            ConfirmationRequired: Unless confirmed=True (destructive)
            MalformedDocument: If the envelope fails validation (state kept)

        """
        with self.mutex:
            self._require_state(STATE_UNLOCKED)
            if not confirmed:
                raise ConfirmationRequired()
            try:
                imported = document_from_envelope(envelope)
            except MalformedDocument:
                self._audit("DENIED", "IMPORT", reason="malformed")
                raise

            def change(document):
                document.meta = imported.meta
                document.tasks = imported.tasks
                document.notes = imported.notes
                document.activity = imported.activity
                document.goals = imported.goals
                return (f"Vault imported ({len(imported.tasks)} tasks, "
                        f"{len(imported.notes)} notes)")

            self.mutate(change, "import")
            self._audit("ALLOWED", "IMPORT")
            return self.state
