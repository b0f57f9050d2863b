"""Tests for LLM providers and model-output parsing."""

import json
import pytest
from pathlib import Path

import httpx

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.llm import (
    MockProvider, NebiusProvider, OpenAICompatibleProvider, OpenRouterProvider, ProviderError,
    create_provider,
)
from src.core.parsing import extract_json_object, strip_code_fences

MESSAGES = [{"role": "user", "content": "hi"}]


def completion(content: str = "Hello") -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3},
    }


class Recorder:
    """httpx handler that replays scripted responses and records requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_provider(recorder: Recorder, **kwargs) -> NebiusProvider:
    return NebiusProvider(
        api_key="test-key",
        retry_delay_base=0.0,
        transport=httpx.MockTransport(recorder),
        **kwargs,
    )


# ============================================================================
# OpenAI-Compatible Provider Tests
# ============================================================================

class TestOpenAICompatibleProvider:
    """Tests for the HTTP provider against a mock transport."""

    @pytest.mark.asyncio
    async def test_successful_completion(self):
        recorder = Recorder(httpx.Response(200, json=completion("Ready")))
        provider = make_provider(recorder)

        response = await provider.complete(MESSAGES, temperature=0.0, max_tokens=5)

        assert response.content == "Ready"
        assert response.input_tokens == 12
        assert response.output_tokens == 3
        request = recorder.requests[0]
        assert str(request.url) == "https://api.tokenfactory.nebius.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body["model"] == "meta-llama/Llama-3.3-70B-Instruct"
        assert body["max_tokens"] == 5
        assert "response_format" not in body

    @pytest.mark.asyncio
    async def test_schema_requests_json_output(self):
        recorder = Recorder(httpx.Response(200, json=completion('{"clue": "OCEAN", "number": 2}')))
        schema = {"title": "spymaster_clue", "type": "object"}

        await make_provider(recorder).complete(MESSAGES, response_schema=schema)

        body = json.loads(recorder.requests[0].content)
        assert body["response_format"]["type"] == "json_schema"
        assert body["response_format"]["json_schema"]["name"] == "spymaster_clue"
        assert body["response_format"]["json_schema"]["schema"] == schema

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        recorder = Recorder(
            httpx.Response(503, json={"error": {"message": "overloaded"}}),
            httpx.Response(200, json=completion()),
        )
        response = await make_provider(recorder).complete(MESSAGES)

        assert response.content == "Hello"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self):
        recorder = Recorder(*(httpx.Response(500, text="boom") for _ in range(3)))

        with pytest.raises(ProviderError) as exc_info:
            await make_provider(recorder, max_retries=3).complete(MESSAGES)

        assert exc_info.value.status_code == 500
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        recorder = Recorder(httpx.Response(400, json={"error": {"message": "bad model"}}))

        with pytest.raises(ProviderError) as exc_info:
            await make_provider(recorder).complete(MESSAGES)

        assert exc_info.value.status_code == 400
        assert "bad model" in str(exc_info.value)
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_connect_error_retried(self):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.Response(200, json=completion()))
        response = await make_provider(recorder).complete(MESSAGES)

        assert response.content == "Hello"
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_timeout_fails_fast(self):
        recorder = Recorder(httpx.ReadTimeout("slow"), httpx.Response(200, json=completion()))

        with pytest.raises(ProviderError):
            await make_provider(recorder).complete(MESSAGES)
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_unexpected_payload(self):
        recorder = Recorder(httpx.Response(200, json={"choices": []}))
        with pytest.raises(ProviderError):
            await make_provider(recorder).complete(MESSAGES)

    @pytest.mark.asyncio
    async def test_null_content_is_empty_string(self):
        recorder = Recorder(httpx.Response(200, json={"choices": [{"message": {"content": None}}]}))
        response = await make_provider(recorder).complete(MESSAGES)
        assert response.content == ""

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("NEBIUS_API_KEY", raising=False)
        with pytest.raises(ValueError):
            NebiusProvider()

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
        provider = OpenRouterProvider()
        assert provider.api_key == "env-key"
        assert provider.base_url == "https://openrouter.ai/api/v1"

    def test_custom_base_url(self):
        provider = OpenAICompatibleProvider(api_key="k", base_url="http://localhost:8000/v1/")
        assert provider.base_url == "http://localhost:8000/v1"


# ============================================================================
# Mock Provider / Factory Tests
# ============================================================================

class TestMockProvider:
    """Tests for the scripted test provider."""

    @pytest.mark.asyncio
    async def test_cycles_responses(self):
        provider = MockProvider(responses=["a", "b"])
        contents = [(await provider.complete(MESSAGES)).content for _ in range(3)]
        assert contents == ["a", "b", "a"]
        assert provider.call_count == 3

    @pytest.mark.asyncio
    async def test_fail_with(self):
        provider = MockProvider(fail_with=ProviderError("down"))
        with pytest.raises(ProviderError):
            await provider.complete(MESSAGES)
        assert len(provider.calls) == 1


class TestCreateProvider:
    """Tests for the provider factory."""

    def test_default_is_nebius(self):
        provider = create_provider(api_key="k")
        assert isinstance(provider, NebiusProvider)
        assert provider.model == "meta-llama/Llama-3.3-70B-Instruct"

    def test_model_override(self):
        provider = create_provider("openrouter", model="some/model", api_key="k")
        assert isinstance(provider, OpenRouterProvider)
        assert provider.model == "some/model"

    def test_mock_ignores_api_key(self):
        assert isinstance(create_provider("mock", api_key="ignored"), MockProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_provider("carrier-pigeon")


# ============================================================================
# Parsing Tests
# ============================================================================

class TestParsing:
    """Tests for defensive JSON extraction."""

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences("```\nplain\n```") == "plain"
        assert strip_code_fences("  no fence  ") == "no fence"

    def test_bare_json(self):
        assert extract_json_object('{"clue": "OCEAN", "number": 2}') == {"clue": "OCEAN", "number": 2}

    def test_json_inside_prose(self):
        text = 'My answer is {"cardWord": "APPLE", "confidence": 0.7} - final.'
        assert extract_json_object(text) == {"cardWord": "APPLE", "confidence": 0.7}

    def test_skips_non_object_braces(self):
        assert extract_json_object('{not json} then {"a": 1}') == {"a": 1}

    def test_no_object(self):
        assert extract_json_object("no json at all") is None
        assert extract_json_object("[1, 2, 3]") is None
