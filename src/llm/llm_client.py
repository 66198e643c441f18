import json
import logging
import os
import re
from typing import Any, Optional

import httpx

from llm.errors import LLMConfigurationError, LLMGenerationError
from llm.providers.base import LLMProvider

logger = logging.getLogger(__name__)

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def build_provider(name: Optional[str] = None) -> LLMProvider:
    name = (name or LLM_PROVIDER).lower()
    if name == "mock":
        from llm.providers.mock_provider import MockProvider

        return MockProvider()
    if name == "openai":
        from llm.providers.openai_provider import OpenAIProvider

        return OpenAIProvider()
    raise LLMConfigurationError(f"Server configuration error: unknown LLM_PROVIDER '{name}'")


def extract_json_object(text: str) -> dict:
    """
    Parse the first JSON object out of a model answer.

    Models sometimes wrap the object in prose or a Markdown fence even in
    JSON mode; both are tolerated. Anything else raises LLMGenerationError.
    """
    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    raise LLMGenerationError("AI failed to return a valid JSON response.")


class LLMClient:
    """Thin wrapper around a text-completion provider.

    The provider is built lazily so a missing API key surfaces as a
    configuration error on the request that needs it, not at import time.
    """

    def __init__(self, provider: Optional[LLMProvider] = None):
        self._provider = provider

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = build_provider()
        return self._provider

    def complete(
        self,
        *,
        system: str,
        user: str,
        json_mode: bool = False,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
    ) -> str:
        provider = self.provider
        try:
            text = provider.generate(
                system=system,
                user=user,
                json_mode=json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except LLMConfigurationError:
            raise
        except httpx.HTTPError as e:
            logger.error(f"LLM provider request failed: {e}")
            raise LLMGenerationError(f"LLM provider request failed: {e}") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Unexpected LLM provider response: {e}")
            raise LLMGenerationError("Unexpected response from LLM provider.") from e

        if not text or not text.strip():
            raise LLMGenerationError("AI failed to return a valid response.")
        return text

    def complete_json(self, *, system: str, user: str, **kwargs: Any) -> dict:
        text = self.complete(system=system, user=user, json_mode=True, **kwargs)
        return extract_json_object(text)
