import logging
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import ValidationError

from llm.errors import SuggestionValidationError, itemize_validation_errors
from llm.llm_client import LLMClient
from llm.prompts import SUGGEST_TASKS_SYSTEM, build_suggest_tasks_prompt
from llm.schemas import AISuggestedTask, TaskSuggestionResult
from taskflow.models import utcnow

logger = logging.getLogger(__name__)


class TaskExtractor:
    """Turns a note's free text into validated task suggestions."""

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def extract(
        self,
        note_title: str,
        note_text: str,
        existing_titles: Sequence[str] = (),
        now: Optional[datetime] = None,
    ) -> List[AISuggestedTask]:
        user = build_suggest_tasks_prompt(
            note_title, note_text, list(existing_titles), now or utcnow()
        )
        data = self.llm.complete_json(
            system=SUGGEST_TASKS_SYSTEM,
            user=user,
            temperature=0.3,
            max_tokens=1500,
        )
        try:
            result = TaskSuggestionResult.model_validate(data)
        except ValidationError as e:
            errors = itemize_validation_errors(e)
            logger.error(f"AI suggestion output failed validation: {errors}")
            raise SuggestionValidationError(errors) from e

        logger.info(f"Extracted {len(result.tasks)} suggestion(s) from note '{note_title[:40]}'")
        return result.tasks
