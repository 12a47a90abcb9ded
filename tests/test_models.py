"""Unit tests for the document model."""

from datetime import datetime, timezone

from taskvault.models import (
    ACTIVITY_LIMIT,
    Goal,
    Task,
    append_activity,
    dashboard_stats,
    generate_id,
    new_document,
)


class TestIds:
    def test_prefix(self):
        assert generate_id("task").startswith("task-")

    def test_unique(self):
        ids = {generate_id("note") for _ in range(1000)}
        assert len(ids) == 1000


class TestTaskStatus:
    """doneAt is stamped once and never reset."""

    def test_done_sets_done_at(self):
        task = Task(id="t", title="x")
        task.set_status("done", "2026-01-01T00:00:00+00:00")
        assert task.done_at == "2026-01-01T00:00:00+00:00"

    def test_other_status_leaves_done_at_unset(self):
        task = Task(id="t", title="x")
        task.set_status("in_progress", "2026-01-01T00:00:00+00:00")
        assert task.done_at is None

    def test_away_and_back_keeps_original(self):
        task = Task(id="t", title="x")
        task.set_status("done", "2026-01-01T00:00:00+00:00")
        task.set_status("backlog", "2026-01-02T00:00:00+00:00")
        assert task.done_at == "2026-01-01T00:00:00+00:00"
        task.set_status("done", "2026-01-03T00:00:00+00:00")
        assert task.done_at == "2026-01-01T00:00:00+00:00"
        assert task.updated_at == "2026-01-03T00:00:00+00:00"


class TestActivity:
    def test_newest_first(self):
        document = new_document()
        append_activity(document, "first")
        append_activity(document, "second")
        assert [e.text for e in document.activity] == ["second", "first"]

    def test_cap_keeps_most_recent(self):
        document = new_document()
        for i in range(600):
            append_activity(document, f"entry {i}")

        assert len(document.activity) == ACTIVITY_LIMIT == 500
        assert [e.text for e in document.activity] == [
            f"entry {i}" for i in range(599, 99, -1)
        ]

    def test_entry_ids_unique(self):
        document = new_document()
        for i in range(50):
            append_activity(document, "x")
        assert len({e.id for e in document.activity}) == 50


class TestDocument:
    def test_new_document_defaults(self):
        document = new_document("2026-01-01T00:00:00+00:00")
        assert document.meta.version == 1
        assert document.meta.created_at == document.meta.updated_at
        assert document.tasks == [] and document.notes == [] and document.activity == []
        assert document.primary_goal == Goal()

    def test_find(self, sample_document):
        assert sample_document.find_task("task-1").title == "Write report"
        assert sample_document.find_task("missing") is None
        assert sample_document.find_note("note-1").title == "Ideas"
        assert sample_document.find_note("missing") is None


class TestDashboardStats:
    def test_counts(self, sample_document):
        now = datetime(2026, 1, 10, tzinfo=timezone.utc)
        stats = dashboard_stats(sample_document, now)

        assert stats["tasks_total"] == 2
        assert stats["tasks_done"] == 1
        assert stats["tasks_by_status"]["in_progress"] == 1
        assert stats["tasks_by_status"]["backlog"] == 0
        assert stats["notes"] == 1
        assert stats["days_active"] == 10
        assert stats["goal_title"] == "Save up"
        assert stats["goal_progress"] == 2.5

    def test_zero_target(self):
        stats = dashboard_stats(new_document())
        assert stats["goal_progress"] == 0.0
        assert stats["days_active"] == 1

    def test_progress_capped(self):
        document = new_document()
        document.goals["primary"] = Goal(current=150, target=100)
        assert dashboard_stats(document)["goal_progress"] == 100.0
