import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import AsyncIterator, List, Optional

import httpx

from api.metrics import (
    LLM_REQUESTS_TOTAL,
    SUGGESTIONS_GENERATED_TOTAL,
    SUGGESTIONS_STORED_TOTAL,
)
from extraction.note_summarizer import NoteSummarizer
from extraction.task_extractor import TaskExtractor
from llm.chat_providers import resolve_chat_provider
from llm.errors import LLMError
from llm.llm_client import LLMClient
from llm.prompts import build_chat_system_prompt, serialize_chat_context
from storage.base import NotFoundError, Store
from taskflow.models import ChatContext, ChatMessage, SuggestedTask, utcnow
from taskflow.sync import RECONCILE_APPEND

logger = logging.getLogger(__name__)

# Only the tail of the conversation is sent to the chat vendor
CHAT_HISTORY_LIMIT = 5


def day_bounds(day: date):
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


class BackendAPI:
    """Orchestrates the AI features: store reads, model calls, store writes."""

    def __init__(
        self,
        store: Store,
        llm_client: Optional[LLMClient] = None,
        reconcile_policy: str = RECONCILE_APPEND,
        chat_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.llm = llm_client or LLMClient()
        self.reconcile_policy = reconcile_policy
        self.chat_transport = chat_transport

    async def _call_llm(self, operation: str, fn, *args, **kwargs):
        # completion providers are blocking; keep them off the event loop
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except LLMError:
            LLM_REQUESTS_TOTAL.labels(operation=operation, outcome="error").inc()
            raise
        LLM_REQUESTS_TOTAL.labels(operation=operation, outcome="success").inc()
        return result

    async def suggest_tasks(self, note_id: str, prompt: str) -> List[SuggestedTask]:
        """Generate suggestions for a note and merge them into its stored list."""
        note = await self.store.get_note(note_id)
        if note is None:
            raise NotFoundError("Note", note_id)

        existing_ids = {s.id for s in note.suggested_tasks}
        extractor = TaskExtractor(self.llm)
        generated = await self._call_llm(
            "suggest_tasks",
            extractor.extract,
            note.title,
            prompt,
            [s.title for s in note.suggested_tasks],
        )
        SUGGESTIONS_GENERATED_TOTAL.inc(len(generated))

        suggestions = await self.store.reconcile_suggestions(
            note_id, generated, self.reconcile_policy
        )
        stored = sum(1 for s in suggestions if s.id not in existing_ids)
        SUGGESTIONS_STORED_TOTAL.inc(stored)
        logger.info(
            f"Note {note_id}: {len(generated)} generated, {stored} stored, "
            f"{len(suggestions)} total"
        )
        return suggestions

    async def suggest_title(self, content: str) -> str:
        summarizer = NoteSummarizer(self.llm)
        return await self._call_llm("suggest_title", summarizer.suggest_title, content)

    async def daily_summary(self, day: Optional[date] = None) -> str:
        day = day or utcnow().date()
        start, end = day_bounds(day)
        tasks = await self.store.tasks_due_between(start, end)
        summarizer = NoteSummarizer(self.llm)
        return await self._call_llm("daily_summary", summarizer.daily_summary, tasks, day)

    async def chat_context(self, data: Optional[ChatContext] = None) -> str:
        if data is not None:
            return serialize_chat_context(data.tasks, data.notes)
        tasks = await self.store.list_tasks()
        notes = await self.store.list_notes()
        return serialize_chat_context(tasks, notes)

    async def chat(
        self,
        model: str,
        messages: List[ChatMessage],
        data: Optional[ChatContext] = None,
    ) -> AsyncIterator[str]:
        """Stream the assistant's answer as text deltas."""
        provider = resolve_chat_provider(model, transport=self.chat_transport)
        system = build_chat_system_prompt(await self.chat_context(data), utcnow())
        # the system prompt is ours; client-sent system turns are dropped
        history = [
            {"role": m.role, "content": m.content} for m in messages if m.role != "system"
        ][-CHAT_HISTORY_LIMIT:]

        logger.info(f"Chat with {model} ({provider.vendor}), {len(history)} message(s)")
        try:
            async for text in provider.stream(model=model, system=system, messages=history):
                yield text
        except LLMError:
            LLM_REQUESTS_TOTAL.labels(operation="chat", outcome="error").inc()
            raise
        LLM_REQUESTS_TOTAL.labels(operation="chat", outcome="success").inc()
