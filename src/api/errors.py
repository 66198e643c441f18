import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from llm.errors import (
    LLMConfigurationError,
    LLMGenerationError,
    SuggestionValidationError,
    UnsupportedModelError,
)
from storage.base import ConflictError, NotFoundError
from taskflow.sync import InvalidSubtaskError

logger = logging.getLogger(__name__)

# leading loc parts that only say where the value came from
_LOC_SOURCES = {"body", "query", "path", "header"}


def error_response(status_code: int, message: str, details: Optional[Any] = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _request_errors(exc: RequestValidationError) -> list:
    items = []
    for err in exc.errors():
        loc = list(err.get("loc", ()))
        if loc and loc[0] in _LOC_SOURCES:
            loc = loc[1:]
        items.append({"field": ".".join(str(p) for p in loc), "message": err.get("msg", "")})
    return items


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = _request_errors(exc)
    logger.info(f"Rejected {request.method} {request.url.path}: {details}")
    return error_response(400, "Invalid request data", details)


async def not_found_handler(request: Request, exc: NotFoundError):
    return error_response(404, str(exc))


async def conflict_handler(request: Request, exc: ConflictError):
    return error_response(409, str(exc))


async def invalid_subtask_handler(request: Request, exc: InvalidSubtaskError):
    details = [
        {"field": "subtasks", "message": f"Sub-task {sid} does not belong to this task"}
        for sid in exc.subtask_ids
    ]
    return error_response(400, str(exc), details)


async def unsupported_model_handler(request: Request, exc: UnsupportedModelError):
    return error_response(400, str(exc))


async def llm_configuration_handler(request: Request, exc: LLMConfigurationError):
    logger.error(f"LLM configuration error on {request.url.path}: {exc}")
    return error_response(500, str(exc))


async def suggestion_validation_handler(request: Request, exc: SuggestionValidationError):
    logger.error(f"AI output rejected on {request.url.path}: {exc.errors}")
    return error_response(500, "AI returned data in an unexpected format.", exc.errors)


async def llm_generation_handler(request: Request, exc: LLMGenerationError):
    logger.error(f"LLM generation failed on {request.url.path}: {exc}")
    return error_response(500, f"Failed to generate a response: {exc}")


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error")


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(ConflictError, conflict_handler)
    app.add_exception_handler(InvalidSubtaskError, invalid_subtask_handler)
    app.add_exception_handler(UnsupportedModelError, unsupported_model_handler)
    app.add_exception_handler(LLMConfigurationError, llm_configuration_handler)
    app.add_exception_handler(SuggestionValidationError, suggestion_validation_handler)
    app.add_exception_handler(LLMGenerationError, llm_generation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
