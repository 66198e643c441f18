from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from taskflow.models import (
    NoteUpdate,
    SubTaskUpdate,
    Task,
    TaskAnalytics,
    TaskCreate,
    TaskFilters,
    TaskStats,
    TaskUpdate,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_task(**overrides) -> Task:
    data = dict(
        id="t1",
        title="Write report",
        status="todo",
        priority="medium",
        category="work",
        start_date=NOW,
        due_date=NOW,
        created_at=NOW,
        updated_at=NOW,
    )
    data.update(overrides)
    return Task(**data)


def test_task_create_reads_camel_case_and_normalizes_to_utc():
    t = TaskCreate.model_validate({
        "title": "  Buy milk  ",
        "status": "todo",
        "priority": "high",
        "category": "shopping",
        "dueDate": "2024-05-01T10:00:00+02:00",
        "suggestedTaskId": "s1",
    })
    assert t.title == "Buy milk"
    assert t.due_date == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)
    assert t.due_date.tzinfo is not None
    assert t.suggested_task_id == "s1"
    assert t.subtasks == []


def test_task_create_requires_core_fields():
    with pytest.raises(ValidationError):
        TaskCreate.model_validate({"title": "No due date", "status": "todo",
                                   "priority": "low", "category": "other"})
    with pytest.raises(ValidationError):
        TaskCreate.model_validate({"title": "   ", "status": "todo", "priority": "low",
                                   "category": "other", "dueDate": NOW.isoformat()})
    with pytest.raises(ValidationError):
        TaskCreate.model_validate({"title": "Bad status", "status": "done", "priority": "low",
                                   "category": "other", "dueDate": NOW.isoformat()})


def test_task_update_tracks_only_sent_fields():
    u = TaskUpdate.model_validate({"status": "completed", "description": None})
    assert u.changes() == {"status": "completed", "description": None}


def test_task_update_rejects_null_for_required_fields():
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"status": None})
    with pytest.raises(ValidationError):
        TaskUpdate.model_validate({"dueDate": None})


def test_task_update_keeps_subtasks_out_of_changes():
    u = TaskUpdate.model_validate({"title": "x", "subtasks": [{"id": "a", "completed": True}]})
    assert u.changes() == {"title": "x"}
    assert u.subtasks[0].id == "a"


def test_new_subtask_needs_text():
    with pytest.raises(ValidationError):
        SubTaskUpdate.model_validate({"completed": False})
    assert SubTaskUpdate.model_validate({"id": "a", "completed": True}).text is None


def test_note_update_rejects_null_title():
    with pytest.raises(ValidationError):
        NoteUpdate.model_validate({"title": None})
    assert NoteUpdate.model_validate({"content": None}).changes() == {"content": None}


def test_task_serializes_with_camel_case_keys():
    dumped = make_task(suggested_task_id="s1").model_dump(by_alias=True)
    assert "dueDate" in dumped
    assert dumped["suggestedTaskId"] == "s1"
    assert "due_date" not in dumped


def test_stats_total_is_sum_of_statuses():
    stats = TaskStats.from_counts({"todo": 2, "completed": 3, "overdue": 1})
    assert stats.total == 6
    assert stats.in_progress == 0
    assert "in_progress" in stats.model_dump()


def test_analytics_rounds_completion_rate():
    tasks = [
        make_task(id="a", status="completed", priority="high"),
        make_task(id="b", category="health"),
        make_task(id="c", status="in_progress"),
    ]
    a = TaskAnalytics.from_tasks(tasks)
    assert a.completion_rate == 33
    assert a.high_priority == 1
    assert a.by_category["work"] == 2
    assert a.by_status["todo"] == 1
    assert TaskAnalytics.from_tasks([]).completion_rate == 0
    assert "completionRate" in a.model_dump(by_alias=True)


def test_filters_match_search_and_due_range():
    task = make_task(description="Quarterly NUMBERS")
    assert TaskFilters(search="numbers").matches(task)
    assert not TaskFilters(search="groceries").matches(task)
    assert TaskFilters(date_from=NOW, date_to=NOW).matches(task)
    assert not TaskFilters(date_from=NOW + timedelta(seconds=1)).matches(task)
    assert not TaskFilters(status=["completed"]).matches(task)


def test_date_only_upper_bound_is_end_of_day():
    evening = make_task(due_date=datetime(2024, 5, 1, 23, 30, tzinfo=timezone.utc))
    filters = TaskFilters(date_to="2024-05-01")
    assert filters.date_to == datetime(2024, 5, 1, 23, 59, 59, 999999, tzinfo=timezone.utc)
    assert filters.matches(evening)
    assert not TaskFilters(date_to="2024-05-01T12:00:00Z").matches(evening)
