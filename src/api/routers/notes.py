import logging
from typing import List

from fastapi import APIRouter, Depends, Response

from api.dependencies import get_store
from storage.base import NotFoundError, Store
from taskflow.models import Note, NoteCreate, NoteDetail, NoteUpdate

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/notes", response_model=List[Note])
async def list_notes(store: Store = Depends(get_store)):
    """Notes, most recently updated first."""
    return await store.list_notes()


@router.post("/notes", response_model=Note, status_code=201)
async def create_note(payload: NoteCreate, store: Store = Depends(get_store)):
    note = await store.create_note(payload)
    logger.info(f"Note created: {note.id} '{note.title[:50]}'")
    return note


@router.get("/notes/{note_id}", response_model=NoteDetail)
async def get_note(note_id: str, store: Store = Depends(get_store)):
    """A note with its suggested tasks in creation order."""
    note = await store.get_note(note_id)
    if note is None:
        raise NotFoundError("Note", note_id)
    return note


@router.patch("/notes/{note_id}", response_model=Note)
async def update_note(note_id: str, payload: NoteUpdate, store: Store = Depends(get_store)):
    note = await store.update_note(note_id, payload)
    if note is None:
        raise NotFoundError("Note", note_id)
    return note


@router.delete("/notes/{note_id}", status_code=204)
async def delete_note(note_id: str, store: Store = Depends(get_store)) -> Response:
    if not await store.delete_note(note_id):
        raise NotFoundError("Note", note_id)
    logger.info(f"Note deleted: {note_id}")
    return Response(status_code=204)
