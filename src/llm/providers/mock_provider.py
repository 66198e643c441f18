from __future__ import annotations
import json
from datetime import datetime, timedelta, timezone
from typing import Optional

from llm.providers.base import LLMProvider


class MockProvider(LLMProvider):
    def generate(
        self,
        *,
        system: str,
        user: str,
        json_mode: bool = False,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        model: str | None = None,
    ) -> str:
        """
        Returns dummy responses based on the prompt content.
        """
        # Task suggestion request
        if "analyze the following note" in user:
            tomorrow = (datetime.now(timezone.utc) + timedelta(days=1)).replace(
                hour=9, minute=0, second=0, microsecond=0
            )
            lower_user = user.lower()
            category = "personal"
            if "buy" in lower_user or "order" in lower_user:
                category = "shopping"
            elif "meeting" in lower_user or "report" in lower_user:
                category = "work"
            elif "doctor" in lower_user or "gym" in lower_user:
                category = "health"
            priority = "high" if "urgent" in lower_user else "low"

            return json.dumps({
                "tasks": [
                    {
                        "title": "Review note and plan next steps",
                        "description": None,
                        "status": "todo",
                        "priority": priority,
                        "category": category,
                        "startDate": tomorrow.isoformat(),
                        "dueDate": tomorrow.isoformat(),
                    }
                ]
            })

        # Title request
        if '"title"' in system:
            words = user.split()[:8]
            return json.dumps({"title": " ".join(words) or "Untitled note"})

        # Daily summary request
        if "tasks for today" in user:
            return "Here's your plan for today! " + user.split("\n\n", 1)[-1]

        # Default fallback
        return "{}"
