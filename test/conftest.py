import pytest
from fastapi.testclient import TestClient

from llm.llm_client import LLMClient
from storage.memory_store import MemoryStore


class FakeProvider:
    def __init__(self, response_text="{}"):
        self.response_text = response_text
        self.calls = []

    def generate(self, *, system: str, user: str, **kwargs) -> str:
        self.calls.append({"system": system, "user": user, **kwargs})
        if isinstance(self.response_text, Exception):
            raise self.response_text
        return self.response_text


@pytest.fixture
def fake_provider_factory():
    def _make(response_text="{}"):
        return FakeProvider(response_text)
    return _make


@pytest.fixture
def fake_llm(fake_provider_factory):
    return fake_provider_factory()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def client(store, fake_llm, monkeypatch):
    from api import dependencies
    from api.main import app
    from storage import db

    # never reach for a real database from the API tests
    monkeypatch.setattr(db, "DATABASE_URL", "")

    app.dependency_overrides[dependencies.get_store] = lambda: store
    app.dependency_overrides[dependencies.get_llm_client] = lambda: LLMClient(provider=fake_llm)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
