"""
In-memory store, used when no DATABASE_URL is configured.

Rows are kept as plain dicts keyed by id. Each public coroutine does all of
its checks before its first write and never awaits in between, so a failing
call leaves the data untouched and no other request can interleave.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from storage.base import ConflictError, NotFoundError, Store
from taskflow.models import (
    PRIORITY_RANK,
    Note,
    NoteCreate,
    NoteDetail,
    NoteUpdate,
    SubTask,
    SuggestedTask,
    Task,
    TaskCreate,
    TaskFilters,
    TaskLink,
    TaskStats,
    TaskUpdate,
    utcnow,
)
from taskflow.sync import plan_reconciliation, plan_subtask_sync

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class MemoryStore(Store):
    kind = "memory"

    def __init__(self):
        self._tasks: Dict[str, dict] = {}
        self._subtasks: Dict[str, dict] = {}
        self._notes: Dict[str, dict] = {}
        self._suggestions: Dict[str, dict] = {}

    # --- row -> model helpers ---

    def _subtasks_of(self, task_id: str) -> List[dict]:
        rows = [s for s in self._subtasks.values() if s["task_id"] == task_id]
        return sorted(rows, key=lambda s: s["created_at"])

    def _task_model(self, row: dict) -> Task:
        subtasks = [SubTask(**s) for s in self._subtasks_of(row["id"])]
        return Task(**row, subtasks=subtasks)

    def _task_linked_to(self, suggestion_id: str) -> Optional[dict]:
        for row in self._tasks.values():
            if row["suggested_task_id"] == suggestion_id:
                return row
        return None

    def _suggestion_model(self, row: dict) -> SuggestedTask:
        linked = self._task_linked_to(row["id"])
        link = None
        if linked is not None:
            link = TaskLink(id=linked["id"], title=linked["title"], status=linked["status"])
        return SuggestedTask(**row, created_task=link)

    def _check_linkable(self, suggestion_id: str, task_id: Optional[str] = None) -> None:
        if suggestion_id not in self._suggestions:
            raise NotFoundError("Suggested task", suggestion_id)
        linked = self._task_linked_to(suggestion_id)
        if linked is not None and linked["id"] != task_id:
            raise ConflictError("Suggested task is already linked to another task")

    def _set_added(self, suggestion_id: Optional[str], value: bool, now: datetime) -> None:
        row = self._suggestions.get(suggestion_id) if suggestion_id else None
        if row is not None:
            row["is_added"] = value
            row["updated_at"] = now

    # --- tasks ---

    async def list_tasks(self, filters: Optional[TaskFilters] = None) -> List[Task]:
        rows = sorted(
            reversed(list(self._tasks.values())),
            key=lambda r: r["created_at"],
            reverse=True,
        )
        tasks = [self._task_model(r) for r in rows]
        if filters is not None:
            tasks = [t for t in tasks if filters.matches(t)]
        return tasks

    async def get_task(self, task_id: str) -> Optional[Task]:
        row = self._tasks.get(task_id)
        return self._task_model(row) if row else None

    async def create_task(self, data: TaskCreate) -> Task:
        if data.suggested_task_id:
            self._check_linkable(data.suggested_task_id)

        now = utcnow()
        task_id = _new_id()
        self._tasks[task_id] = {
            "id": task_id,
            "title": data.title,
            "description": data.description,
            "status": data.status,
            "priority": data.priority,
            "category": data.category,
            "start_date": data.start_date or now,
            "due_date": data.due_date,
            "starred": data.starred,
            "suggested_task_id": data.suggested_task_id,
            "created_at": now,
            "updated_at": now,
        }
        for item in data.subtasks:
            sid = _new_id()
            self._subtasks[sid] = {
                "id": sid,
                "text": item.text,
                "completed": item.completed,
                "task_id": task_id,
                "created_at": now,
                "updated_at": now,
            }
        self._set_added(data.suggested_task_id, True, now)
        return self._task_model(self._tasks[task_id])

    async def update_task(self, task_id: str, data: TaskUpdate) -> Optional[Task]:
        row = self._tasks.get(task_id)
        if row is None:
            return None

        changes = data.changes()
        old_link = row["suggested_task_id"]
        relink = "suggested_task_id" in changes and changes["suggested_task_id"] != old_link
        if relink and changes["suggested_task_id"]:
            self._check_linkable(changes["suggested_task_id"], task_id)

        plan = None
        if data.subtasks is not None:
            plan = plan_subtask_sync(
                [s["id"] for s in self._subtasks_of(task_id)], data.subtasks
            )

        now = utcnow()
        row.update(changes)
        row["updated_at"] = now
        if relink:
            self._set_added(old_link, False, now)
            self._set_added(changes["suggested_task_id"], True, now)

        if plan is not None:
            for sid in plan.to_delete:
                del self._subtasks[sid]
            for item in plan.to_update:
                sub = self._subtasks[item.id]
                sub["completed"] = item.completed
                if item.text is not None:
                    sub["text"] = item.text
                sub["updated_at"] = now
            for item in plan.to_create:
                sid = _new_id()
                self._subtasks[sid] = {
                    "id": sid,
                    "text": item.text,
                    "completed": item.completed,
                    "task_id": task_id,
                    "created_at": now,
                    "updated_at": now,
                }
        return self._task_model(row)

    async def delete_task(self, task_id: str) -> bool:
        row = self._tasks.get(task_id)
        if row is None:
            return False
        self._set_added(row["suggested_task_id"], False, utcnow())
        for sid in [s["id"] for s in self._subtasks_of(task_id)]:
            del self._subtasks[sid]
        del self._tasks[task_id]
        return True

    async def delete_all(self) -> None:
        self._subtasks.clear()
        self._tasks.clear()
        self._suggestions.clear()
        self._notes.clear()

    async def task_stats(self) -> TaskStats:
        counts: Dict[str, int] = {}
        for row in self._tasks.values():
            counts[row["status"]] = counts.get(row["status"], 0) + 1
        return TaskStats.from_counts(counts)

    async def tasks_due_between(self, start: datetime, end: datetime) -> List[Task]:
        rows = [r for r in self._tasks.values() if start <= r["due_date"] < end]
        rows.sort(key=lambda r: (PRIORITY_RANK[r["priority"]], r["due_date"]))
        return [self._task_model(r) for r in rows]

    async def update_subtask(self, subtask_id: str, completed: bool) -> Optional[SubTask]:
        row = self._subtasks.get(subtask_id)
        if row is None:
            return None
        row["completed"] = completed
        row["updated_at"] = utcnow()
        return SubTask(**row)

    # --- notes ---

    async def list_notes(self) -> List[Note]:
        rows = sorted(
            reversed(list(self._notes.values())),
            key=lambda r: r["updated_at"],
            reverse=True,
        )
        return [Note(**r) for r in rows]

    async def get_note(self, note_id: str) -> Optional[NoteDetail]:
        row = self._notes.get(note_id)
        if row is None:
            return None
        return NoteDetail(**row, suggested_tasks=await self.list_suggestions(note_id))

    async def create_note(self, data: NoteCreate) -> Note:
        now = utcnow()
        note_id = _new_id()
        self._notes[note_id] = {
            "id": note_id,
            "title": data.title,
            "content": data.content,
            "created_at": now,
            "updated_at": now,
        }
        return Note(**self._notes[note_id])

    async def update_note(self, note_id: str, data: NoteUpdate) -> Optional[Note]:
        row = self._notes.get(note_id)
        if row is None:
            return None
        row.update(data.changes())
        row["updated_at"] = utcnow()
        return Note(**row)

    async def delete_note(self, note_id: str) -> bool:
        if note_id not in self._notes:
            return False
        doomed = [sid for sid, s in self._suggestions.items() if s["note_id"] == note_id]
        for row in self._tasks.values():
            if row["suggested_task_id"] in doomed:
                row["suggested_task_id"] = None
        for sid in doomed:
            del self._suggestions[sid]
        del self._notes[note_id]
        return True

    # --- suggestions ---

    async def list_suggestions(self, note_id: str) -> List[SuggestedTask]:
        rows = [s for s in self._suggestions.values() if s["note_id"] == note_id]
        rows.sort(key=lambda s: s["created_at"])
        return [self._suggestion_model(r) for r in rows]

    async def reconcile_suggestions(
        self, note_id: str, incoming: Sequence, policy: str
    ) -> List[SuggestedTask]:
        if note_id not in self._notes:
            raise NotFoundError("Note", note_id)

        existing = await self.list_suggestions(note_id)
        plan = plan_reconciliation(existing, incoming, policy)

        for sid in plan.delete_ids:
            del self._suggestions[sid]
        now = utcnow()
        for item in plan.create:
            sid = _new_id()
            self._suggestions[sid] = {
                "id": sid,
                "title": item.title,
                "description": item.description,
                "status": item.status,
                "priority": item.priority,
                "category": item.category,
                "start_date": item.start_date,
                "due_date": item.due_date,
                "is_added": False,
                "note_id": note_id,
                "created_at": now,
                "updated_at": now,
            }
        logger.info(
            f"Reconciled suggestions for note {note_id} ({policy}): "
            f"+{len(plan.create)} -{len(plan.delete_ids)} skipped={plan.skipped}"
        )
        return await self.list_suggestions(note_id)

    async def update_suggestion(
        self, suggestion_id: str, is_added: bool
    ) -> Optional[SuggestedTask]:
        row = self._suggestions.get(suggestion_id)
        if row is None:
            return None
        now = utcnow()
        linked = self._task_linked_to(suggestion_id)
        if is_added and linked is None:
            raise ConflictError(
                "Suggested task has no task; create one with suggestedTaskId to add it"
            )
        if not is_added and linked is not None:
            linked["suggested_task_id"] = None
            linked["updated_at"] = now
        self._set_added(suggestion_id, is_added, now)
        return self._suggestion_model(row)
