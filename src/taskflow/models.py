from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


TaskStatus = Literal["todo", "in_progress", "completed", "overdue"]
TaskPriority = Literal["low", "medium", "high"]
TaskCategory = Literal["work", "personal", "shopping", "health", "other"]

TASK_STATUSES = ("todo", "in_progress", "completed", "overdue")
TASK_PRIORITIES = ("low", "medium", "high")
TASK_CATEGORIES = ("work", "personal", "shopping", "health", "other")

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}


def as_utc(value: datetime) -> datetime:
    # naive timestamps are taken to be UTC already
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


def end_of_day(value):
    # a bare date as an upper bound covers that whole day
    if isinstance(value, str) and DATE_ONLY.fullmatch(value.strip()):
        value = date.fromisoformat(value.strip())
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time.max, tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]
# Inclusive upper bound on a due date; "2024-05-03" means up to 23:59:59.999999 UTC
DueUntil = Annotated[datetime, BeforeValidator(end_of_day), AfterValidator(as_utc)]


class CamelModel(BaseModel):
    """Wire format is camelCase, Python attributes stay snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip_required(v: str, field: str) -> str:
    v2 = v.strip()
    if not v2:
        raise ValueError(f"{field} must not be blank")
    return v2


# --- Sub-tasks ---


class SubTask(CamelModel):
    id: str
    text: str
    completed: bool = False
    task_id: str
    created_at: UtcDatetime
    updated_at: UtcDatetime


class SubTaskCreate(CamelModel):
    text: str = Field(..., min_length=1)
    completed: bool = False

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        return _strip_required(v, "text")


class SubTaskUpdate(CamelModel):
    # id is present for existing sub-tasks, absent for new ones
    id: Optional[str] = None
    text: Optional[str] = None
    completed: bool

    @model_validator(mode="after")
    def new_subtask_needs_text(self) -> "SubTaskUpdate":
        if self.text is not None:
            self.text = _strip_required(self.text, "text")
        if self.id is None and not self.text:
            raise ValueError("text is required for new sub-tasks")
        return self


class SubTaskPatch(CamelModel):
    completed: bool


# --- Tasks ---


class TaskLink(CamelModel):
    """The live task a suggestion produced."""

    id: str
    title: str
    status: TaskStatus


class Task(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    category: TaskCategory
    start_date: UtcDatetime
    due_date: UtcDatetime
    starred: bool = False
    suggested_task_id: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime
    subtasks: List[SubTask] = Field(default_factory=list)


class TaskCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: TaskStatus
    priority: TaskPriority
    category: TaskCategory
    start_date: Optional[UtcDatetime] = None
    due_date: UtcDatetime
    starred: bool = False
    suggested_task_id: Optional[str] = None
    subtasks: List[SubTaskCreate] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _strip_required(v, "title")


# Fields a PATCH may clear with an explicit null.
NULLABLE_TASK_FIELDS = {"description", "suggested_task_id"}


class TaskUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    category: Optional[TaskCategory] = None
    start_date: Optional[UtcDatetime] = None
    due_date: Optional[UtcDatetime] = None
    starred: Optional[bool] = None
    suggested_task_id: Optional[str] = None
    subtasks: Optional[List[SubTaskUpdate]] = None

    @model_validator(mode="after")
    def reject_null_for_required_fields(self) -> "TaskUpdate":
        for name in self.model_fields_set:
            if name in NULLABLE_TASK_FIELDS:
                continue
            if getattr(self, name) is None:
                raise ValueError(f"{name} may not be null")
        if self.title is not None:
            self.title = _strip_required(self.title, "title")
        return self

    def changes(self) -> Dict[str, object]:
        """Scalar task fields explicitly sent by the client."""
        data = {name: getattr(self, name) for name in self.model_fields_set}
        data.pop("subtasks", None)
        return data


class TaskFilters(BaseModel):
    status: Optional[List[TaskStatus]] = None
    priority: Optional[List[TaskPriority]] = None
    category: Optional[List[TaskCategory]] = None
    search: Optional[str] = None
    date_from: Optional[UtcDatetime] = None
    date_to: Optional[DueUntil] = None

    def matches(self, task: Task) -> bool:
        if self.status and task.status not in self.status:
            return False
        if self.priority and task.priority not in self.priority:
            return False
        if self.category and task.category not in self.category:
            return False
        if self.search:
            needle = self.search.lower()
            haystack = f"{task.title}\n{task.description or ''}".lower()
            if needle not in haystack:
                return False
        if self.date_from and task.due_date < self.date_from:
            return False
        if self.date_to and task.due_date > self.date_to:
            return False
        return True


class TaskStats(BaseModel):
    # plain field names: the dashboard reads "in_progress"
    total: int = 0
    todo: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> "TaskStats":
        per_status = {s: int(counts.get(s, 0)) for s in TASK_STATUSES}
        return cls(total=sum(per_status.values()), **per_status)


class TaskAnalytics(CamelModel):
    total: int
    completed: int
    completion_rate: int
    high_priority: int
    by_status: Dict[str, int]
    by_category: Dict[str, int]
    by_priority: Dict[str, int]

    @classmethod
    def from_tasks(cls, tasks: List[Task]) -> "TaskAnalytics":
        by_status = {s: 0 for s in TASK_STATUSES}
        by_category = {c: 0 for c in TASK_CATEGORIES}
        by_priority = {p: 0 for p in TASK_PRIORITIES}
        for t in tasks:
            by_status[t.status] += 1
            by_category[t.category] += 1
            by_priority[t.priority] += 1
        total = len(tasks)
        completed = by_status["completed"]
        rate = round(completed * 100 / total) if total else 0
        return cls(
            total=total,
            completed=completed,
            completion_rate=rate,
            high_priority=by_priority["high"],
            by_status=by_status,
            by_category=by_category,
            by_priority=by_priority,
        )


# --- Notes & suggestions ---


class SuggestedTask(CamelModel):
    id: str
    title: str
    description: Optional[str] = None
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    category: TaskCategory = "personal"
    start_date: Optional[UtcDatetime] = None
    due_date: Optional[UtcDatetime] = None
    is_added: bool = False
    note_id: str
    created_at: UtcDatetime
    updated_at: UtcDatetime
    created_task: Optional[TaskLink] = None


class SuggestedTaskPatch(CamelModel):
    is_added: bool


class Note(CamelModel):
    id: str
    title: str
    content: Optional[str] = None
    created_at: UtcDatetime
    updated_at: UtcDatetime


class NoteDetail(Note):
    suggested_tasks: List[SuggestedTask] = Field(default_factory=list)


class NoteCreate(CamelModel):
    title: str = Field(..., min_length=1)
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        return _strip_required(v, "title")


class NoteUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1)
    content: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            raise ValueError("title may not be null")
        return _strip_required(v, "title")

    def changes(self) -> Dict[str, object]:
        return {name: getattr(self, name) for name in self.model_fields_set}


# --- AI request bodies ---


class SuggestTasksIn(CamelModel):
    prompt: str = Field(..., min_length=10)
    note_id: str = Field(..., min_length=1)


class SuggestTitleIn(CamelModel):
    content: str = Field(..., min_length=20)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class ChatContext(BaseModel):
    tasks: List[dict] = Field(default_factory=list)
    notes: List[dict] = Field(default_factory=list)


class ChatIn(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    data: Optional[ChatContext] = None
