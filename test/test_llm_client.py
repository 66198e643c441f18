import json

import httpx
import pytest

from llm.errors import LLMConfigurationError, LLMGenerationError
from llm.llm_client import LLMClient, build_provider, extract_json_object
from llm.providers.mock_provider import MockProvider
from llm.providers.openai_provider import OpenAIProvider


def test_llm_extra_text_around_json(fake_provider_factory):
    provider = fake_provider_factory(
        'Sure! Here is the result: {"tasks":[{"title":"Call mom"}]} Thanks.'
    )
    client = LLMClient(provider=provider)
    out = client.complete_json(system="s", user="Call mom")
    assert out == {"tasks": [{"title": "Call mom"}]}
    assert provider.calls[0]["json_mode"] is True


def test_llm_markdown_fence_is_tolerated():
    assert extract_json_object('```json\n{"title": "Weekly plan"}\n```') == {"title": "Weekly plan"}


def test_llm_invalid_json_raises(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory("INVALID OUTPUT"))
    with pytest.raises(LLMGenerationError):
        client.complete_json(system="s", user="Anything")


def test_llm_json_array_is_not_an_object():
    with pytest.raises(LLMGenerationError):
        extract_json_object('[{"title": "x"}]')


def test_llm_empty_output_raises(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory("   "))
    with pytest.raises(LLMGenerationError):
        client.complete(system="s", user="u")


def test_llm_transport_error_becomes_generation_error(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory(httpx.ConnectError("boom")))
    with pytest.raises(LLMGenerationError):
        client.complete(system="s", user="u")


def test_llm_configuration_error_passes_through(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory(LLMConfigurationError("no key")))
    with pytest.raises(LLMConfigurationError):
        client.complete(system="s", user="u")


def test_build_provider_selection(monkeypatch):
    assert isinstance(build_provider("mock"), MockProvider)
    with pytest.raises(LLMConfigurationError):
        build_provider("carrier-pigeon")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(LLMConfigurationError, match="OpenAI API key is missing"):
        build_provider("openai")


def test_missing_key_surfaces_on_first_call_not_construction(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr("llm.llm_client.LLM_PROVIDER", "openai")
    client = LLMClient()
    with pytest.raises(LLMConfigurationError):
        client.complete(system="s", user="u")


def test_openai_provider_sends_json_mode(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"tasks": []}'}}]})

    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://llm.example/v1")
    provider = OpenAIProvider(transport=httpx.MockTransport(handler))
    out = provider.generate(system="sys", user="hi", json_mode=True, max_tokens=50)

    assert out == '{"tasks": []}'
    assert seen["url"] == "https://llm.example/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["response_format"] == {"type": "json_object"}
    assert seen["body"]["max_tokens"] == 50
    assert seen["body"]["messages"][0] == {"role": "system", "content": "sys"}


def test_openai_http_error_becomes_generation_error(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    provider = OpenAIProvider(
        transport=httpx.MockTransport(lambda r: httpx.Response(503, text="overloaded"))
    )
    client = LLMClient(provider=provider)
    with pytest.raises(LLMGenerationError):
        client.complete(system="s", user="u")
