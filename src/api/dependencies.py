import os
from typing import Optional

import httpx
from fastapi import Depends

from api import state
from api.backend import BackendAPI
from llm.llm_client import LLMClient
from storage.base import Store
from taskflow.sync import RECONCILE_APPEND, RECONCILE_POLICIES

# Configuration
SUGGESTION_RECONCILE_POLICY = (
    os.getenv("SUGGESTION_RECONCILE_POLICY", RECONCILE_APPEND).strip().lower()
)
if SUGGESTION_RECONCILE_POLICY not in RECONCILE_POLICIES:
    raise RuntimeError(
        f"SUGGESTION_RECONCILE_POLICY must be one of {RECONCILE_POLICIES}, "
        f"got '{SUGGESTION_RECONCILE_POLICY}'"
    )

llm_client = LLMClient()


def get_store() -> Store:
    return state.store


def get_llm_client() -> LLMClient:
    return llm_client


def get_reconcile_policy() -> str:
    return SUGGESTION_RECONCILE_POLICY


def get_chat_transport() -> Optional[httpx.AsyncBaseTransport]:
    # tests swap in an httpx.MockTransport
    return None


def get_backend(
    store: Store = Depends(get_store),
    client: LLMClient = Depends(get_llm_client),
    policy: str = Depends(get_reconcile_policy),
    chat_transport: Optional[httpx.AsyncBaseTransport] = Depends(get_chat_transport),
) -> BackendAPI:
    return BackendAPI(
        store=store,
        llm_client=client,
        reconcile_policy=policy,
        chat_transport=chat_transport,
    )
