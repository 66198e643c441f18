from __future__ import annotations
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from taskflow.models import TaskCategory, TaskPriority, TaskStatus, UtcDatetime


class AISuggestedTask(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    category: TaskCategory = "personal"
    start_date: Optional[UtcDatetime] = None
    due_date: Optional[UtcDatetime] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("title must not be blank")
        return v2

    @field_validator("description")
    @classmethod
    def empty_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class TaskSuggestionResult(BaseModel):
    tasks: List[AISuggestedTask]


class TitleSuggestion(BaseModel):
    title: str = Field(..., min_length=1)
