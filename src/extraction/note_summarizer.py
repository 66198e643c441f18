import logging
from datetime import date
from typing import Iterable, Optional

from pydantic import ValidationError

from llm.errors import SuggestionValidationError, itemize_validation_errors
from llm.llm_client import LLMClient
from llm.prompts import (
    DAILY_SUMMARY_SYSTEM,
    SUGGEST_TITLE_SYSTEM,
    build_daily_summary_prompt,
)
from llm.schemas import TitleSuggestion

logger = logging.getLogger(__name__)


class NoteSummarizer:

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self.llm = llm_client or LLMClient()

    def suggest_title(self, content: str) -> str:
        data = self.llm.complete_json(
            system=SUGGEST_TITLE_SYSTEM,
            user=content,
            temperature=0.5,
            max_tokens=50,
        )
        try:
            return TitleSuggestion.model_validate(data).title.strip()
        except ValidationError as e:
            raise SuggestionValidationError(itemize_validation_errors(e)) from e

    def daily_summary(self, tasks: Iterable, today: date) -> str:
        summary = self.llm.complete(
            system=DAILY_SUMMARY_SYSTEM,
            user=build_daily_summary_prompt(tasks, today),
            temperature=0.7,
            max_tokens=200,
        )
        logger.info(f"Generated daily summary for {today.isoformat()}")
        return summary.strip()
