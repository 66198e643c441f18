import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.backend import BackendAPI
from api.dependencies import get_backend, get_store
from storage.base import NotFoundError, Store
from taskflow.models import SuggestedTask, SuggestedTaskPatch, SuggestTasksIn, SuggestTitleIn

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/ai/suggest-tasks", response_model=List[SuggestedTask])
async def suggest_tasks(payload: SuggestTasksIn, backend: BackendAPI = Depends(get_backend)):
    """
    Ask the model for tasks hidden in a note and merge them into the note's
    stored suggestions. Returns every suggestion of the note.
    """
    logger.info(f"Suggesting tasks for note {payload.note_id}: {payload.prompt[:50]}...")
    return await backend.suggest_tasks(payload.note_id, payload.prompt)


@router.post("/ai/suggest-title")
async def suggest_title(payload: SuggestTitleIn, backend: BackendAPI = Depends(get_backend)) -> dict:
    return {"title": await backend.suggest_title(payload.content)}


@router.post("/ai/daily-summary")
async def daily_summary(
    day: Optional[date] = Query(None, alias="date"),
    backend: BackendAPI = Depends(get_backend),
) -> dict:
    return {"summary": await backend.daily_summary(day)}


@router.patch("/suggested-tasks/{suggestion_id}", response_model=SuggestedTask)
async def update_suggestion(
    suggestion_id: str, payload: SuggestedTaskPatch, store: Store = Depends(get_store)
):
    suggestion = await store.update_suggestion(suggestion_id, payload.is_added)
    if suggestion is None:
        raise NotFoundError("Suggested task", suggestion_id)
    return suggestion
