import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from api.backend import day_bounds
from api.dependencies import get_store
from storage.base import NotFoundError, Store
from taskflow.models import (
    DueUntil,
    SubTask,
    SubTaskPatch,
    Task,
    TaskAnalytics,
    TaskCategory,
    TaskCreate,
    TaskFilters,
    TaskPriority,
    TaskStats,
    TaskStatus,
    TaskUpdate,
    utcnow,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/tasks", response_model=List[Task])
async def list_tasks(
    status: Optional[List[TaskStatus]] = Query(None),
    priority: Optional[List[TaskPriority]] = Query(None),
    category: Optional[List[TaskCategory]] = Query(None),
    search: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[DueUntil] = Query(None, alias="dateTo"),
    store: Store = Depends(get_store),
):
    """
    List tasks, newest first. List filters may be repeated.

    ``dateTo`` is inclusive; a bare date such as ``2024-05-03`` covers that whole day.
    """
    filters = TaskFilters(
        status=status,
        priority=priority,
        category=category,
        search=search.strip() if search and search.strip() else None,
        date_from=date_from,
        date_to=date_to,
    )
    return await store.list_tasks(filters)


@router.post("/tasks", response_model=Task, status_code=201)
async def create_task(payload: TaskCreate, store: Store = Depends(get_store)):
    task = await store.create_task(payload)
    logger.info(f"Task created: {task.id} '{task.title[:50]}'")
    return task


# Fixed paths are declared before /tasks/{task_id} so they are not read as ids.


@router.delete("/tasks/all", status_code=204)
async def delete_all(store: Store = Depends(get_store)) -> Response:
    """Delete every task and every note."""
    await store.delete_all()
    return Response(status_code=204)


@router.get("/tasks/stats", response_model=TaskStats)
async def task_stats(store: Store = Depends(get_store)):
    return await store.task_stats()


@router.get("/tasks/analytics", response_model=TaskAnalytics)
async def task_analytics(store: Store = Depends(get_store)):
    return TaskAnalytics.from_tasks(await store.list_tasks())


@router.get("/tasks/today", response_model=List[Task])
async def tasks_today(
    day: Optional[date] = Query(None, alias="date"),
    store: Store = Depends(get_store),
):
    """Tasks due on the given day (UTC, default today), highest priority first."""
    start, end = day_bounds(day or utcnow().date())
    return await store.tasks_due_between(start, end)


@router.get("/tasks/{task_id}", response_model=Task)
async def get_task(task_id: str, store: Store = Depends(get_store)):
    task = await store.get_task(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


@router.patch("/tasks/{task_id}", response_model=Task)
async def update_task(task_id: str, payload: TaskUpdate, store: Store = Depends(get_store)):
    task = await store.update_task(task_id, payload)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: str, store: Store = Depends(get_store)) -> Response:
    if not await store.delete_task(task_id):
        raise NotFoundError("Task", task_id)
    return Response(status_code=204)


@router.patch("/subtasks/{subtask_id}", response_model=SubTask)
async def update_subtask(
    subtask_id: str, payload: SubTaskPatch, store: Store = Depends(get_store)
):
    subtask = await store.update_subtask(subtask_id, payload.completed)
    if subtask is None:
        raise NotFoundError("Sub-task", subtask_id)
    return subtask
