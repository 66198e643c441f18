from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

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
    TaskStats,
    TaskUpdate,
)


class StoreError(Exception):
    pass


class NotFoundError(StoreError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class ConflictError(StoreError):
    pass


class Store(ABC):
    """
    Persistence for tasks, sub-tasks, notes and suggestions.

    Every multi-row mutation must be all-or-nothing: when a method raises,
    nothing it was about to change may be left changed.
    """

    kind = "abstract"

    # --- tasks ---

    @abstractmethod
    async def list_tasks(self, filters: Optional[TaskFilters] = None) -> List[Task]:
        """Tasks newest first, optionally filtered."""

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]:
        ...

    @abstractmethod
    async def create_task(self, data: TaskCreate) -> Task:
        """
        Create a task with its sub-tasks. When ``suggested_task_id`` is set the
        suggestion is marked added in the same transaction.

        Raises NotFoundError for an unknown suggestion and ConflictError when
        the suggestion already backs a live task.
        """

    @abstractmethod
    async def update_task(self, task_id: str, data: TaskUpdate) -> Optional[Task]:
        """
        Apply a partial update. A ``subtasks`` list replaces the task's
        sub-tasks (see taskflow.sync.plan_subtask_sync). Returns None when
        the task does not exist.
        """

    @abstractmethod
    async def delete_task(self, task_id: str) -> bool:
        """Unlink the task's suggestion, then delete the task. False if missing."""

    @abstractmethod
    async def delete_all(self) -> None:
        """Delete every task and every note."""

    @abstractmethod
    async def task_stats(self) -> TaskStats:
        ...

    @abstractmethod
    async def tasks_due_between(self, start: datetime, end: datetime) -> List[Task]:
        """Tasks with start <= due_date < end, highest priority first."""

    @abstractmethod
    async def update_subtask(self, subtask_id: str, completed: bool) -> Optional[SubTask]:
        ...

    # --- notes ---

    @abstractmethod
    async def list_notes(self) -> List[Note]:
        """Notes, most recently updated first."""

    @abstractmethod
    async def get_note(self, note_id: str) -> Optional[NoteDetail]:
        ...

    @abstractmethod
    async def create_note(self, data: NoteCreate) -> Note:
        ...

    @abstractmethod
    async def update_note(self, note_id: str, data: NoteUpdate) -> Optional[Note]:
        ...

    @abstractmethod
    async def delete_note(self, note_id: str) -> bool:
        """Delete the note and its suggestions; tasks made from them are detached."""

    # --- suggestions ---

    @abstractmethod
    async def list_suggestions(self, note_id: str) -> List[SuggestedTask]:
        """Suggestions of a note in creation order."""

    @abstractmethod
    async def reconcile_suggestions(
        self, note_id: str, incoming: Sequence, policy: str
    ) -> List[SuggestedTask]:
        """
        Merge generated suggestions into the stored ones (see
        taskflow.sync.plan_reconciliation) and return the note's full list.
        """

    @abstractmethod
    async def update_suggestion(
        self, suggestion_id: str, is_added: bool
    ) -> Optional[SuggestedTask]:
        """
        Set ``is_added``. Clearing it also detaches a task still linked;
        setting it needs a linked task already, otherwise ConflictError.
        """

    async def health(self) -> dict:
        return {"status": "healthy", "store": self.kind}
