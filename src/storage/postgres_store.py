"""
PostgreSQL-backed store.

Multi-step mutations (sub-task sync, unlink-then-delete, delete-all,
suggestion reconciliation) each run inside a single transaction, so a
failure rolls the whole operation back.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

import asyncpg

from storage import db
from storage.base import ConflictError, NotFoundError, Store
from taskflow.models import (
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

TASK_COLUMNS = (
    "id, title, description, status, priority, category, start_date, due_date, "
    "starred, suggested_task_id, created_at, updated_at"
)

# Columns a task PATCH may touch; keys come from TaskUpdate field names.
UPDATABLE_TASK_COLUMNS = {
    "title",
    "description",
    "status",
    "priority",
    "category",
    "start_date",
    "due_date",
    "starred",
    "suggested_task_id",
}

SUGGESTION_SELECT = """
    SELECT s.*,
           t.id     AS linked_task_id,
           t.title  AS linked_task_title,
           t.status AS linked_task_status
    FROM suggested_tasks s
    LEFT JOIN tasks t ON t.suggested_task_id = s.id
"""

PRIORITY_ORDER_SQL = "CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END"


def _new_id() -> str:
    return str(uuid.uuid4())


def _affected(status: str) -> int:
    # asyncpg returns e.g. "DELETE 1"
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError, AttributeError):
        return 0


@contextmanager
def _link_conflicts():
    # two writers can pass the link pre-check at once; the UNIQUE column decides
    try:
        yield
    except asyncpg.UniqueViolationError as e:
        raise ConflictError("Suggested task is already linked to another task") from e


def _suggestion_from_record(record) -> SuggestedTask:
    data = dict(record)
    link = None
    if data.pop("linked_task_id", None) is not None:
        link = TaskLink(
            id=record["linked_task_id"],
            title=data.pop("linked_task_title"),
            status=data.pop("linked_task_status"),
        )
    else:
        data.pop("linked_task_title", None)
        data.pop("linked_task_status", None)
    return SuggestedTask(**data, created_task=link)


class PostgresStore(Store):
    kind = "postgres"

    # --- shared helpers, always given the connection in use ---

    async def _subtasks_by_task(self, conn, task_ids: List[str]) -> Dict[str, List[SubTask]]:
        out: Dict[str, List[SubTask]] = {tid: [] for tid in task_ids}
        if not task_ids:
            return out
        records = await conn.fetch(
            "SELECT * FROM subtasks WHERE task_id = ANY($1::text[]) ORDER BY created_at, id",
            task_ids,
        )
        for r in records:
            out[r["task_id"]].append(SubTask(**dict(r)))
        return out

    async def _tasks_from_records(self, conn, records) -> List[Task]:
        subtasks = await self._subtasks_by_task(conn, [r["id"] for r in records])
        return [Task(**dict(r), subtasks=subtasks[r["id"]]) for r in records]

    async def _fetch_task(self, conn, task_id: str) -> Optional[Task]:
        record = await conn.fetchrow(f"SELECT {TASK_COLUMNS} FROM tasks WHERE id = $1", task_id)
        if record is None:
            return None
        tasks = await self._tasks_from_records(conn, [record])
        return tasks[0]

    async def _check_linkable(self, conn, suggestion_id: str, task_id: Optional[str] = None) -> None:
        exists = await conn.fetchval("SELECT id FROM suggested_tasks WHERE id = $1", suggestion_id)
        if exists is None:
            raise NotFoundError("Suggested task", suggestion_id)
        linked = await conn.fetchval(
            "SELECT id FROM tasks WHERE suggested_task_id = $1", suggestion_id
        )
        if linked is not None and linked != task_id:
            raise ConflictError("Suggested task is already linked to another task")

    async def _set_added(self, conn, suggestion_id: Optional[str], value: bool, now: datetime) -> None:
        if not suggestion_id:
            return
        await conn.execute(
            "UPDATE suggested_tasks SET is_added = $2, updated_at = $3 WHERE id = $1",
            suggestion_id,
            value,
            now,
        )

    async def _insert_subtasks(self, conn, task_id: str, items, now: datetime) -> None:
        if not items:
            return
        await conn.executemany(
            """
            INSERT INTO subtasks (id, text, completed, task_id, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $5)
            """,
            [(_new_id(), item.text, item.completed, task_id, now) for item in items],
        )

    async def _list_suggestions(self, conn, note_id: str) -> List[SuggestedTask]:
        records = await conn.fetch(
            SUGGESTION_SELECT + " WHERE s.note_id = $1 ORDER BY s.created_at ASC, s.id",
            note_id,
        )
        return [_suggestion_from_record(r) for r in records]

    # --- tasks ---

    async def list_tasks(self, filters: Optional[TaskFilters] = None) -> List[Task]:
        clauses = []
        args: list = []

        def param(value) -> str:
            args.append(value)
            return f"${len(args)}"

        if filters is not None:
            if filters.status:
                clauses.append(f"status = ANY({param(list(filters.status))}::text[])")
            if filters.priority:
                clauses.append(f"priority = ANY({param(list(filters.priority))}::text[])")
            if filters.category:
                clauses.append(f"category = ANY({param(list(filters.category))}::text[])")
            if filters.search:
                p = param(filters.search.lower())
                clauses.append(
                    f"(strpos(lower(title), {p}) > 0 "
                    f"OR strpos(lower(coalesce(description, '')), {p}) > 0)"
                )
            if filters.date_from:
                clauses.append(f"due_date >= {param(filters.date_from)}")
            if filters.date_to:
                clauses.append(f"due_date <= {param(filters.date_to)}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT {TASK_COLUMNS} FROM tasks {where} ORDER BY created_at DESC, id"
        async with db.get_connection() as conn:
            records = await conn.fetch(query, *args)
            return await self._tasks_from_records(conn, records)

    async def get_task(self, task_id: str) -> Optional[Task]:
        async with db.get_connection() as conn:
            return await self._fetch_task(conn, task_id)

    async def create_task(self, data: TaskCreate) -> Task:
        now = utcnow()
        task_id = _new_id()
        async with db.transaction() as conn:
            if data.suggested_task_id:
                await self._check_linkable(conn, data.suggested_task_id)

            with _link_conflicts():
                await conn.execute(
                    f"""
                    INSERT INTO tasks ({TASK_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $11)
                    """,
                    task_id,
                    data.title,
                    data.description,
                    data.status,
                    data.priority,
                    data.category,
                    data.start_date or now,
                    data.due_date,
                    data.starred,
                    data.suggested_task_id,
                    now,
                )
            await self._insert_subtasks(conn, task_id, data.subtasks, now)
            await self._set_added(conn, data.suggested_task_id, True, now)
            task = await self._fetch_task(conn, task_id)

        logger.info(f"Created task {task_id} (suggestion: {data.suggested_task_id})")
        return task

    async def update_task(self, task_id: str, data: TaskUpdate) -> Optional[Task]:
        now = utcnow()
        async with db.transaction() as conn:
            old_link = await conn.fetchrow(
                "SELECT suggested_task_id FROM tasks WHERE id = $1", task_id
            )
            if old_link is None:
                return None
            old_link = old_link["suggested_task_id"]

            changes = {k: v for k, v in data.changes().items() if k in UPDATABLE_TASK_COLUMNS}
            relink = "suggested_task_id" in changes and changes["suggested_task_id"] != old_link
            if relink and changes["suggested_task_id"]:
                await self._check_linkable(conn, changes["suggested_task_id"], task_id)

            plan = None
            if data.subtasks is not None:
                existing = await conn.fetch(
                    "SELECT id FROM subtasks WHERE task_id = $1 ORDER BY created_at, id", task_id
                )
                plan = plan_subtask_sync([r["id"] for r in existing], data.subtasks)

            if relink:
                # free the unique link before pointing the task elsewhere
                await self._set_added(conn, old_link, False, now)

            columns = list(changes)
            assignments = [f"{col} = ${i + 2}" for i, col in enumerate(columns)]
            assignments.append(f"updated_at = ${len(columns) + 2}")
            with _link_conflicts():
                await conn.execute(
                    f"UPDATE tasks SET {', '.join(assignments)} WHERE id = $1",
                    task_id,
                    *[changes[c] for c in columns],
                    now,
                )

            if relink:
                await self._set_added(conn, changes["suggested_task_id"], True, now)

            if plan is not None:
                if plan.to_delete:
                    await conn.execute(
                        "DELETE FROM subtasks WHERE id = ANY($1::text[])", plan.to_delete
                    )
                for item in plan.to_update:
                    await conn.execute(
                        """
                        UPDATE subtasks
                        SET completed = $2, text = COALESCE($3, text), updated_at = $4
                        WHERE id = $1 AND task_id = $5
                        """,
                        item.id,
                        item.completed,
                        item.text,
                        now,
                        task_id,
                    )
                await self._insert_subtasks(conn, task_id, plan.to_create, now)
                logger.info(
                    f"Synced subtasks of task {task_id}: -{len(plan.to_delete)} "
                    f"~{len(plan.to_update)} +{len(plan.to_create)}"
                )

            return await self._fetch_task(conn, task_id)

    async def delete_task(self, task_id: str) -> bool:
        async with db.transaction() as conn:
            record = await conn.fetchrow(
                "SELECT suggested_task_id FROM tasks WHERE id = $1", task_id
            )
            if record is None:
                return False
            if record["suggested_task_id"]:
                await self._set_added(conn, record["suggested_task_id"], False, utcnow())
            await conn.execute("DELETE FROM tasks WHERE id = $1", task_id)

        logger.info(f"Deleted task {task_id} (unlinked suggestion: {record['suggested_task_id']})")
        return True

    async def delete_all(self) -> None:
        async with db.transaction() as conn:
            tasks = await conn.execute("DELETE FROM tasks")
            notes = await conn.execute("DELETE FROM notes")
        logger.warning(f"Deleted all data ({_affected(tasks)} tasks, {_affected(notes)} notes)")

    async def task_stats(self) -> TaskStats:
        async with db.get_connection() as conn:
            records = await conn.fetch(
                "SELECT status, COUNT(*) AS count FROM tasks GROUP BY status"
            )
        return TaskStats.from_counts({r["status"]: r["count"] for r in records})

    async def tasks_due_between(self, start: datetime, end: datetime) -> List[Task]:
        async with db.get_connection() as conn:
            records = await conn.fetch(
                f"""
                SELECT {TASK_COLUMNS} FROM tasks
                WHERE due_date >= $1 AND due_date < $2
                ORDER BY {PRIORITY_ORDER_SQL}, due_date
                """,
                start,
                end,
            )
            return await self._tasks_from_records(conn, records)

    async def update_subtask(self, subtask_id: str, completed: bool) -> Optional[SubTask]:
        async with db.get_connection() as conn:
            record = await conn.fetchrow(
                """
                UPDATE subtasks SET completed = $2, updated_at = $3
                WHERE id = $1
                RETURNING *
                """,
                subtask_id,
                completed,
                utcnow(),
            )
        return SubTask(**dict(record)) if record else None

    # --- notes ---

    async def list_notes(self) -> List[Note]:
        async with db.get_connection() as conn:
            records = await conn.fetch("SELECT * FROM notes ORDER BY updated_at DESC, id")
        return [Note(**dict(r)) for r in records]

    async def get_note(self, note_id: str) -> Optional[NoteDetail]:
        async with db.get_connection() as conn:
            record = await conn.fetchrow("SELECT * FROM notes WHERE id = $1", note_id)
            if record is None:
                return None
            suggestions = await self._list_suggestions(conn, note_id)
        return NoteDetail(**dict(record), suggested_tasks=suggestions)

    async def create_note(self, data: NoteCreate) -> Note:
        now = utcnow()
        async with db.get_connection() as conn:
            record = await conn.fetchrow(
                """
                INSERT INTO notes (id, title, content, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $4)
                RETURNING *
                """,
                _new_id(),
                data.title,
                data.content,
                now,
            )
        return Note(**dict(record))

    async def update_note(self, note_id: str, data: NoteUpdate) -> Optional[Note]:
        changes = data.changes()
        columns = [c for c in ("title", "content") if c in changes]
        assignments = [f"{col} = ${i + 2}" for i, col in enumerate(columns)]
        assignments.append(f"updated_at = ${len(columns) + 2}")
        async with db.get_connection() as conn:
            record = await conn.fetchrow(
                f"UPDATE notes SET {', '.join(assignments)} WHERE id = $1 RETURNING *",
                note_id,
                *[changes[c] for c in columns],
                utcnow(),
            )
        return Note(**dict(record)) if record else None

    async def delete_note(self, note_id: str) -> bool:
        # suggestions cascade; tasks made from them keep living with a NULL link
        async with db.get_connection() as conn:
            status = await conn.execute("DELETE FROM notes WHERE id = $1", note_id)
        return _affected(status) > 0

    # --- suggestions ---

    async def list_suggestions(self, note_id: str) -> List[SuggestedTask]:
        async with db.get_connection() as conn:
            return await self._list_suggestions(conn, note_id)

    async def reconcile_suggestions(
        self, note_id: str, incoming: Sequence, policy: str
    ) -> List[SuggestedTask]:
        now = utcnow()
        async with db.transaction() as conn:
            if await conn.fetchval("SELECT id FROM notes WHERE id = $1", note_id) is None:
                raise NotFoundError("Note", note_id)

            existing = await self._list_suggestions(conn, note_id)
            plan = plan_reconciliation(existing, incoming, policy)

            if plan.delete_ids:
                await conn.execute(
                    "DELETE FROM suggested_tasks WHERE id = ANY($1::text[])", plan.delete_ids
                )
            if plan.create:
                # distinct timestamps keep the batch in model order
                await conn.executemany(
                    """
                    INSERT INTO suggested_tasks (
                        id, title, description, status, priority, category,
                        start_date, due_date, is_added, note_id, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, FALSE, $9, $10, $10)
                    """,
                    [
                        (
                            _new_id(),
                            item.title,
                            item.description,
                            item.status,
                            item.priority,
                            item.category,
                            item.start_date,
                            item.due_date,
                            note_id,
                            now + timedelta(microseconds=i),
                        )
                        for i, item in enumerate(plan.create)
                    ],
                )
            result = await self._list_suggestions(conn, note_id)

        logger.info(
            f"Reconciled suggestions for note {note_id} ({policy}): "
            f"+{len(plan.create)} -{len(plan.delete_ids)} skipped={plan.skipped}"
        )
        return result

    async def update_suggestion(
        self, suggestion_id: str, is_added: bool
    ) -> Optional[SuggestedTask]:
        now = utcnow()
        async with db.transaction() as conn:
            exists = await conn.fetchval(
                "SELECT id FROM suggested_tasks WHERE id = $1", suggestion_id
            )
            if exists is None:
                return None
            linked = await conn.fetchval(
                "SELECT id FROM tasks WHERE suggested_task_id = $1", suggestion_id
            )
            if is_added and linked is None:
                raise ConflictError(
                    "Suggested task has no task; create one with suggestedTaskId to add it"
                )
            if not is_added and linked is not None:
                await conn.execute(
                    """
                    UPDATE tasks SET suggested_task_id = NULL, updated_at = $2
                    WHERE suggested_task_id = $1
                    """,
                    suggestion_id,
                    now,
                )
            await self._set_added(conn, suggestion_id, is_added, now)
            record = await conn.fetchrow(SUGGESTION_SELECT + " WHERE s.id = $1", suggestion_id)
        return _suggestion_from_record(record)

    async def health(self) -> dict:
        health = await db.health_check()
        health["store"] = self.kind
        return health
