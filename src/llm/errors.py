from __future__ import annotations

from typing import Any, Dict, List


class LLMError(RuntimeError):
    """Base class for failures talking to an external model."""


class LLMConfigurationError(LLMError):
    """A provider cannot be used because its credentials are missing."""


class LLMGenerationError(LLMError):
    """The provider failed or returned something that is not usable output."""


class UnsupportedModelError(LLMError):
    def __init__(self, model: str):
        self.model = model
        super().__init__(f"Model {model} not supported.")


class SuggestionValidationError(LLMError):
    """The model answered with JSON that does not match the expected shape."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        super().__init__(f"AI response failed validation ({len(errors)} error(s))")


def itemize_validation_errors(exc) -> List[Dict[str, Any]]:
    """Flatten a pydantic ValidationError into ``{field, message}`` items."""
    items = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        items.append({"field": loc, "message": err.get("msg", "")})
    return items
