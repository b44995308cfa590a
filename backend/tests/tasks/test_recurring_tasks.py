from __future__ import annotations

from unittest.mock import patch

import pytest

from app.core.exceptions import NotFoundException
import app.tasks.recurring_tasks as tasks


class _Session:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_run_scheduled_extension_task_returns_summary(monkeypatch):
    session = _Session()
    monkeypatch.setattr(tasks, "SessionLocal", lambda: session)

    class _Service:
        def __init__(self, db):
            assert db is session

        def run_scheduled_extension(self):
            return {"groups_due": 2, "groups_extended": 1, "instances_created": 4, "failures": 1}

    monkeypatch.setattr(tasks, "RecurringSeriesService", _Service)

    result = tasks.run_scheduled_extension_task.run()

    assert result["instances_created"] == 4
    assert session.closed is True


def test_run_scheduled_extension_task_retries_on_error(monkeypatch):
    session = _Session()
    monkeypatch.setattr(tasks, "SessionLocal", lambda: session)

    class _Service:
        def __init__(self, _db):
            pass

        def run_scheduled_extension(self):
            raise RuntimeError("database unavailable")

    monkeypatch.setattr(tasks, "RecurringSeriesService", _Service)

    with patch.object(tasks.run_scheduled_extension_task, "retry", side_effect=RuntimeError("retry")):
        with pytest.raises(RuntimeError, match="retry"):
            tasks.run_scheduled_extension_task.run()
    assert session.closed is True


def test_extend_series_task_returns_created_ids(monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", _Session)

    class _Lesson:
        def __init__(self, lesson_id):
            self.id = lesson_id

    class _Service:
        def __init__(self, _db):
            pass

        def extend_series(self, group_id):
            return [_Lesson(f"{group_id}-1"), _Lesson(f"{group_id}-2")]

    monkeypatch.setattr(tasks, "RecurringSeriesService", _Service)

    assert tasks.extend_series_task.run("g1") == ["g1-1", "g1-2"]


def test_extend_series_task_ignores_deleted_group(monkeypatch):
    monkeypatch.setattr(tasks, "SessionLocal", _Session)

    class _Service:
        def __init__(self, _db):
            pass

        def extend_series(self, group_id):
            raise NotFoundException(f"Recurring group {group_id} not found")

    monkeypatch.setattr(tasks, "RecurringSeriesService", _Service)

    with patch.object(tasks.extend_series_task, "retry") as retry:
        assert tasks.extend_series_task.run("gone") == []
    retry.assert_not_called()
