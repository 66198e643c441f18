import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.backend import BackendAPI
from api.dependencies import get_backend
from llm.errors import LLMError
from taskflow.models import ChatIn

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/chat")
async def chat(payload: ChatIn, backend: BackendAPI = Depends(get_backend)) -> StreamingResponse:
    """Stream the assistant's answer as plain text."""
    stream = backend.chat(payload.model, payload.messages, payload.data)

    # Pull the first chunk here so configuration and vendor errors still get
    # a proper status code; once streaming starts the status is fixed.
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = ""

    async def body():
        if first:
            yield first
        try:
            async for text in stream:
                yield text
        except LLMError as e:
            logger.error(f"Chat stream with {payload.model} aborted: {e}")

    return StreamingResponse(body(), media_type="text/plain; charset=utf-8")
