"""
Streaming chat vendors for the conversational assistant.

Every vendor is reached over its HTTP streaming API (server-sent events)
with httpx; the vendor is picked from the model name prefix.
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

from llm.errors import LLMConfigurationError, LLMGenerationError, UnsupportedModelError

logger = logging.getLogger(__name__)

CHAT_MAX_TOKENS = 1024
CHAT_TIMEOUT_S = 60.0


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
    """Yield the ``data:`` payloads of a server-sent event stream."""
    async for line in lines:
        if not line.startswith("data:"):
            continue
        payload = line[len("data:"):].strip()
        if payload:
            yield payload


class ChatProvider(ABC):
    vendor = "LLM"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @abstractmethod
    def build_request(
        self, *, model: str, system: str, messages: List[Dict[str, str]]
    ) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return url, headers and JSON body of the streaming call."""
        raise NotImplementedError

    @abstractmethod
    def parse_chunk(self, chunk: Dict[str, Any]) -> str:
        """Extract the text delta from one decoded event."""
        raise NotImplementedError

    async def stream(
        self, *, model: str, system: str, messages: List[Dict[str, str]]
    ) -> AsyncIterator[str]:
        url, headers, payload = self.build_request(
            model=model, system=system, messages=messages
        )
        async with httpx.AsyncClient(timeout=CHAT_TIMEOUT_S, transport=self._transport) as client:
            try:
                async with client.stream("POST", url, headers=headers, json=payload) as r:
                    if r.status_code >= 400:
                        body = (await r.aread()).decode("utf-8", "replace")
                        logger.error(f"{self.vendor} chat request failed ({r.status_code}): {body[:200]}")
                        raise LLMGenerationError(
                            f"{self.vendor} chat request failed with status {r.status_code}"
                        )
                    async for data in iter_sse_data(r.aiter_lines()):
                        if data == "[DONE]":
                            break
                        try:
                            chunk = json.loads(data)
                        except json.JSONDecodeError:
                            logger.warning(f"Skipping undecodable {self.vendor} stream event")
                            continue
                        text = self.parse_chunk(chunk)
                        if text:
                            yield text
            except httpx.HTTPError as e:
                raise LLMGenerationError(f"{self.vendor} chat request failed: {e}") from e


class OpenAIChatProvider(ChatProvider):
    vendor = "OpenAI"

    def build_request(self, *, model, system, messages):
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "stream": True,
            "messages": [{"role": "system", "content": system}, *messages],
        }
        return f"{self.base_url}/chat/completions", headers, payload

    def parse_chunk(self, chunk):
        choices = chunk.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("delta") or {}).get("content") or ""


class AnthropicChatProvider(ChatProvider):
    vendor = "Anthropic"
    API_VERSION = "2023-06-01"

    def build_request(self, *, model, system, messages):
        turns = [m for m in messages if m["role"] in ("user", "assistant")]
        # the conversation has to open with a user turn
        while turns and turns[0]["role"] != "user":
            turns.pop(0)
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }
        payload = {
            "model": model,
            "stream": True,
            "system": system,
            "messages": turns,
            "max_tokens": CHAT_MAX_TOKENS,
        }
        return f"{self.base_url}/messages", headers, payload

    def parse_chunk(self, chunk):
        if chunk.get("type") != "content_block_delta":
            return ""
        return (chunk.get("delta") or {}).get("text") or ""


class GeminiChatProvider(ChatProvider):
    vendor = "Google Gemini"

    def build_request(self, *, model, system, messages):
        contents = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] in ("user", "assistant")
        ]
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        payload = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": system}]},
            "generationConfig": {"maxOutputTokens": CHAT_MAX_TOKENS},
        }
        url = f"{self.base_url}/models/{model}:streamGenerateContent?alt=sse"
        return url, headers, payload

    def parse_chunk(self, chunk):
        out = []
        for candidate in chunk.get("candidates") or []:
            for part in (candidate.get("content") or {}).get("parts") or []:
                out.append(part.get("text") or "")
        return "".join(out)


# model prefix -> (provider class, key env var, base url env var, default base url)
CHAT_VENDORS = {
    "gpt": (OpenAIChatProvider, "OPENAI_API_KEY", "OPENAI_BASE_URL", "https://api.openai.com/v1"),
    "claude": (AnthropicChatProvider, "ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "https://api.anthropic.com/v1"),
    "gemini": (
        GeminiChatProvider,
        "GOOGLE_GEMINI_API_KEY",
        "GEMINI_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta",
    ),
}


def resolve_chat_provider(
    model: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> ChatProvider:
    for prefix, (cls, key_var, url_var, default_url) in CHAT_VENDORS.items():
        if not model.startswith(prefix):
            continue
        api_key = os.getenv(key_var, "").strip()
        if not api_key:
            raise LLMConfigurationError(f"{cls.vendor} API key not configured")
        base_url = os.getenv(url_var, default_url).strip()
        return cls(api_key=api_key, base_url=base_url, transport=transport)
    raise UnsupportedModelError(model)
