#!/usr/bin/env python3
"""taskvault - Command line front end for the encrypted task dashboard.

Every command unlocks the vault, performs one operation (persisted before
the command returns) and locks it again.
"""

import argparse
import getpass
import json
import os
import sys
from pathlib import Path

from . import __version__
from .audit import AuditLogger
from .errors import (
    ConfirmationRequired,
    EmptyPassword,
    UnlockFailed,
    VaultError,
)
from .lifecycle import VaultSession
from .models import DEFAULT_PRIORITY, STATUS_BACKLOG, TASK_PRIORITIES, TASK_STATUSES, utc_now
from .seed import DirectorySeedSource, load_seed
from .store import SqliteVaultStore

# Constants
DEFAULT_VAULT_DIR = Path.home() / ".taskvault"
VAULT_FILE = "vault.db"
ACCESS_LOG = "access.log"
PASSWORD_ENV = "TASKVAULT_PASSWORD"


def get_vault_path(args_vault=None):
    """Get vault path from args or default."""
    return Path(args_vault) if args_vault else DEFAULT_VAULT_DIR / VAULT_FILE


def get_password(prompt="Enter master password: "):
    """Get password from environment variable or prompt.

    Checks TASKVAULT_PASSWORD first for automation/testing. Falls back to
    an interactive getpass prompt if not set.
    """
    env_password = os.environ.get(PASSWORD_ENV)
    if env_password:
        return env_password
    return getpass.getpass(prompt)


def fail(message):
    print(message, file=sys.stderr)
    sys.exit(1)


def build_session(vault_path):
    """Session over the SQLite store, logging next to the vault file."""
    store = SqliteVaultStore(vault_path)
    audit_logger = AuditLogger(vault_path.parent / ACCESS_LOG)
    return VaultSession(store, audit_logger)


def open_session(args):
    """Unlock the vault named by args or exit with a generic message."""
    vault_path = get_vault_path(args.vault)

    if not vault_path.exists():
        fail(f"Vault not found: {vault_path}. Run 'taskvault init' first.")

    session = build_session(vault_path)
    try:
        session.unlock(get_password())
    except EmptyPassword:
        fail("Cancelled.")
    except UnlockFailed as e:
        fail(str(e))
    return session


def print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False))


def format_task(task):
    tags = f" [{', '.join(sorted(task.tags))}]" if task.tags else ""
    owner = f" @{task.owner}" if task.owner else ""
    return f"{task.id}  ({task.priority}) {task.title}{owner}{tags}"


# ============================================================================
# Commands
# ============================================================================

def cmd_init(args):
    """Create a new vault, optionally seeded from a directory."""
    vault_path = get_vault_path(args.vault)
    session = build_session(vault_path)

    if vault_path.exists() and not session.needs_creation():
        fail(f"Vault already exists: {vault_path}")

    password = get_password("Enter master password: ")
    confirm = get_password("Confirm master password: ")

    seed = None
    if args.seed_dir:
        seed = load_seed(DirectorySeedSource(args.seed_dir), utc_now())
        for error in seed.errors:
            print(f"[WARN] Seed skipped: {error}", file=sys.stderr)

    session.create(password, confirm, seed=seed)
    document = session.document
    session.lock()
    print(f"Vault created at {vault_path} ({len(document.tasks)} tasks, {len(document.notes)} notes)")


def cmd_status(args):
    """Show dashboard summary."""
    session = open_session(args)
    stats = session.stats()
    session.lock()

    if args.json:
        print_json(stats)
        return

    print(f"Days active: {stats['days_active']}")
    print(f"Tasks done:  {stats['tasks_done']} / {stats['tasks_total']}")
    for status, count in stats["tasks_by_status"].items():
        print(f"  {status}: {count}")
    print(f"Notes:       {stats['notes']}")
    if stats["goal_title"]:
        print(f"Goal:        {stats['goal_title']} ({stats['goal_progress']}%)")
    print(f"Last update: {stats['last_update']}")


def cmd_tasks(args):
    """List tasks grouped by status."""
    session = open_session(args)
    document = session.document
    session.lock()

    statuses = [args.status] if args.status else list(TASK_STATUSES)
    for status in statuses:
        tasks = [t for t in document.tasks if t.status == status]
        print(f"{status} ({len(tasks)})")
        for task in tasks:
            print(f"  {format_task(task)}")


def cmd_task_add(args):
    session = open_session(args)
    task = session.add_task(
        args.title,
        description=args.desc or "",
        status=args.status,
        owner=args.owner or "",
        priority=args.priority,
        tags=args.tag or (),
    )
    session.lock()
    print(f"Created {task.id}")


def cmd_task_edit(args):
    session = open_session(args)
    session.update_task(
        args.id,
        title=args.title,
        description=args.desc,
        owner=args.owner,
        priority=args.priority,
        tags=args.tag,
    )
    session.lock()
    print("Saved.")


def cmd_task_move(args):
    session = open_session(args)
    session.move_task(args.id, args.status)
    session.lock()
    print("Moved.")


def cmd_task_delete(args):
    session = open_session(args)
    session.delete_task(args.id)
    session.lock()
    print("Deleted.")


def cmd_notes(args):
    session = open_session(args)
    document = session.document
    session.lock()

    for note in document.notes:
        if args.id and note.id != args.id:
            continue
        print(f"{note.id}  {note.title}")
        if args.id:
            print()
            print(note.body)


def read_body(args):
    if args.body_file:
        return Path(args.body_file).read_text(encoding="utf-8")
    return args.body


def cmd_note_add(args):
    body = read_body(args)
    session = open_session(args)
    note = session.add_note(args.title, body=body or "", tags=args.tag or ())
    session.lock()
    print(f"Created {note.id}")


def cmd_note_edit(args):
    body = read_body(args)
    session = open_session(args)
    session.update_note(args.id, title=args.title, body=body, tags=args.tag)
    session.lock()
    print("Saved.")


def cmd_note_delete(args):
    session = open_session(args)
    session.delete_note(args.id)
    session.lock()
    print("Deleted.")


def cmd_goal(args):
    """Show or update the primary goal."""
    fields = {
        name: getattr(args, name)
        for name in ("title", "deadline", "current", "target", "notes")
        if getattr(args, name) is not None
    }

    session = open_session(args)
    if fields:
        goal = session.update_goal(**fields)
    else:
        goal = session.document.primary_goal
    session.lock()

    print(f"Goal:     {goal.title}")
    print(f"Deadline: {goal.deadline}")
    print(f"Progress: {goal.current:g} / {goal.target:g}")
    if goal.notes:
        print(goal.notes)


def cmd_activity(args):
    session = open_session(args)
    if args.add:
        session.log_activity(args.add)
    document = session.document
    session.lock()

    for entry in document.activity[:args.limit]:
        print(f"{entry.time}  {entry.text}")


def cmd_export(args):
    """Write a plaintext export of the vault to a file."""
    session = open_session(args)
    out_path = Path(args.file)
    try:
        # Open the target first so an unwritable path leaves no export entry behind
        fd = os.open(str(out_path), os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(session.export_document(), f, indent=2, ensure_ascii=False)
    finally:
        session.lock()
    print(f"Exported to {out_path} (plaintext - store it safely)")


def cmd_import(args):
    """Replace all vault data with an export file."""
    try:
        with open(args.file, encoding="utf-8") as f:
            envelope = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        fail(f"Cannot read import file: {e}")

    session = open_session(args)
    try:
        session.import_document(envelope, confirmed=args.yes)
    except ConfirmationRequired:
        fail("Import replaces ALL vault data. Re-run with --yes to confirm.")
    finally:
        session.lock()
    print("Imported.")


def main():
    parser = argparse.ArgumentParser(
        prog='taskvault',
        description="taskvault - Encrypted personal task and notes dashboard"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument('--vault', help=f'Path to vault file (default: ~/.taskvault/{VAULT_FILE})')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # init
    init_parser = subparsers.add_parser('init', help='Create a new vault')
    init_parser.add_argument('--seed-dir', help='Directory with tasks.json and notes.json')

    # status
    status_parser = subparsers.add_parser('status', help='Show dashboard summary')
    status_parser.add_argument('--json', action='store_true', help='Output as JSON')

    # tasks
    tasks_parser = subparsers.add_parser('tasks', help='List tasks by status')
    tasks_parser.add_argument('--status', choices=TASK_STATUSES, help='Only this status')

    # task-add
    task_add_parser = subparsers.add_parser('task-add', help='Create a task')
    task_add_parser.add_argument('title', help='Task title')
    task_add_parser.add_argument('--desc', help='Description')
    task_add_parser.add_argument('--status', choices=TASK_STATUSES, default=STATUS_BACKLOG)
    task_add_parser.add_argument('--owner', help='Owner')
    task_add_parser.add_argument('--priority', choices=TASK_PRIORITIES, default=DEFAULT_PRIORITY)
    task_add_parser.add_argument('--tag', action='append', help='Tag (can specify multiple)')

    # task-edit
    task_edit_parser = subparsers.add_parser('task-edit', help='Edit a task')
    task_edit_parser.add_argument('id', help='Task id')
    task_edit_parser.add_argument('--title', help='New title')
    task_edit_parser.add_argument('--desc', help='New description')
    task_edit_parser.add_argument('--owner', help='New owner')
    task_edit_parser.add_argument('--priority', choices=TASK_PRIORITIES)
    task_edit_parser.add_argument('--tag', action='append', help='Replace tags (can specify multiple)')

    # task-move
    task_move_parser = subparsers.add_parser('task-move', help='Move a task to another status')
    task_move_parser.add_argument('id', help='Task id')
    task_move_parser.add_argument('status', choices=TASK_STATUSES)

    # task-delete
    task_delete_parser = subparsers.add_parser('task-delete', help='Delete a task')
    task_delete_parser.add_argument('id', help='Task id')

    # notes
    notes_parser = subparsers.add_parser('notes', help='List notes or show one')
    notes_parser.add_argument('id', nargs='?', help='Note id to show')

    # note-add
    note_add_parser = subparsers.add_parser('note-add', help='Create a note')
    note_add_parser.add_argument('title', help='Note title')
    note_add_parser.add_argument('--body', help='Markdown body')
    note_add_parser.add_argument('--body-file', help='Read markdown body from file')
    note_add_parser.add_argument('--tag', action='append', help='Tag (can specify multiple)')

    # note-edit
    note_edit_parser = subparsers.add_parser('note-edit', help='Edit a note')
    note_edit_parser.add_argument('id', help='Note id')
    note_edit_parser.add_argument('--title', help='New title')
    note_edit_parser.add_argument('--body', help='New markdown body')
    note_edit_parser.add_argument('--body-file', help='Read new body from file')
    note_edit_parser.add_argument('--tag', action='append', help='Replace tags (can specify multiple)')

    # note-delete
    note_delete_parser = subparsers.add_parser('note-delete', help='Delete a note')
    note_delete_parser.add_argument('id', help='Note id')

    # goal
    goal_parser = subparsers.add_parser('goal', help='Show or update the primary goal')
    goal_parser.add_argument('--title', help='Goal title')
    goal_parser.add_argument('--deadline', help='Deadline (free text)')
    goal_parser.add_argument('--current', type=float, help='Current value')
    goal_parser.add_argument('--target', type=float, help='Target value')
    goal_parser.add_argument('--notes', help='Notes')

    # activity
    activity_parser = subparsers.add_parser('activity', help='Show the activity log')
    activity_parser.add_argument('-n', '--limit', type=int, default=20, help='Entries to show (default: 20)')
    activity_parser.add_argument('--add', help='Append a free-form entry first')

    # export
    export_parser = subparsers.add_parser('export', help='Export vault as plaintext JSON')
    export_parser.add_argument('file', help='Output file')

    # import
    import_parser = subparsers.add_parser('import', help='Replace vault data from an export')
    import_parser.add_argument('file', help='Export file to import')
    import_parser.add_argument('--yes', action='store_true', help='Confirm replacing all data')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'init': cmd_init,
        'status': cmd_status,
        'tasks': cmd_tasks,
        'task-add': cmd_task_add,
        'task-edit': cmd_task_edit,
        'task-move': cmd_task_move,
        'task-delete': cmd_task_delete,
        'notes': cmd_notes,
        'note-add': cmd_note_add,
        'note-edit': cmd_note_edit,
        'note-delete': cmd_note_delete,
        'goal': cmd_goal,
        'activity': cmd_activity,
        'export': cmd_export,
        'import': cmd_import,
    }

    try:
        commands[args.command](args)
    except VaultError as e:
        fail(f"Error [{e.code}]: {e}")
    except OSError as e:
        fail(f"Error: {e}")


if __name__ == '__main__':
    main()
