"""LLM provider abstraction for the AI player's reasoning calls."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger("llm")


class ProviderError(RuntimeError):
    """A reasoning call failed: non-2xx upstream response, transport error or timeout."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class LLMResponse:
    """Response from an LLM call."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw_response: dict[str, Any] | None = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    model: str

    @abstractmethod
    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
        response_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        When ``response_schema`` is given the provider is asked for a JSON
        document matching it. Callers must still validate the content.

        Raises:
            ProviderError: the call failed.
        """
        pass


class OpenAICompatibleProvider(LLMProvider):
    """Provider for any OpenAI-style ``/chat/completions`` endpoint."""

    name = "openai-compatible"
    default_model = "gpt-4o"
    default_base_url = "https://api.openai.com/v1"
    api_key_env = "OPENAI_API_KEY"

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 3,
        retry_delay_base: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model or self.default_model
        self.api_key = api_key or os.environ.get(self.api_key_env)
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay_base = retry_delay_base
        self._transport = transport

        if not self.api_key:
            raise ValueError(
                f"{self.name} API key required. Set {self.api_key_env} environment variable "
                "or pass api_key parameter."
            )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _body(
        self,
        messages: list[dict[str, str]],
        temperature: float,
        max_tokens: int,
        response_schema: dict[str, Any] | None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_schema is not None:
            body["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": response_schema.get("title", "response"),
                    "schema": response_schema,
                    "strict": True,
                },
            }
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            error_data = response.json()
            return error_data.get("error", {}).get("message", response.text)
        except Exception:
            return response.text

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
        response_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """Generate a completion, retrying 5xx/429 and dropped connections."""
        start_time = time.perf_counter()
        body = self._body(messages, temperature, max_tokens, response_schema)
        data: dict[str, Any] | None = None

        for attempt in range(self.max_retries):
            wait_time = self.retry_delay_base * (2 ** attempt)
            try:
                async with httpx.AsyncClient(transport=self._transport) as client:
                    response = await client.post(
                        f"{self.base_url}/chat/completions",
                        headers=self._headers(),
                        json=body,
                        timeout=self.timeout,
                    )
            except httpx.TimeoutException as e:
                raise ProviderError(f"{self.name} request timed out: {e}") from e
            except (httpx.RemoteProtocolError, httpx.ReadError, httpx.ConnectError) as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        "Network error (%s), retrying in %.1fs (attempt %d/%d): %s",
                        type(e).__name__, wait_time, attempt + 1, self.max_retries, e,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise ProviderError(f"Network error after {self.max_retries} attempts: {e}") from e

            if response.status_code != 200:
                error_msg = self._error_message(response)
                retryable = response.status_code >= 500 or response.status_code == 429
                if retryable and attempt < self.max_retries - 1:
                    logger.warning(
                        "API error %d, retrying in %.1fs (attempt %d/%d)",
                        response.status_code, wait_time, attempt + 1, self.max_retries,
                    )
                    await asyncio.sleep(wait_time)
                    continue
                raise ProviderError(
                    f"{self.name} API error ({response.status_code}): {error_msg}",
                    status_code=response.status_code,
                )

            data = response.json()
            break

        if data is None:
            raise ProviderError(f"{self.name} failed after {self.max_retries} attempts")

        latency_ms = (time.perf_counter() - start_time) * 1000

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name} returned an unexpected payload") from e
        usage = data.get("usage") or {}

        return LLMResponse(
            content=content,
            model=self.model,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            latency_ms=latency_ms,
            raw_response=data,
        )


class NebiusProvider(OpenAICompatibleProvider):
    """Nebius Token Factory (default provider for the in-game AI player)."""

    name = "Nebius"
    default_model = "meta-llama/Llama-3.3-70B-Instruct"
    default_base_url = "https://api.tokenfactory.nebius.com/v1"
    api_key_env = "NEBIUS_API_KEY"


class OpenRouterProvider(OpenAICompatibleProvider):
    """LLM provider using OpenRouter API."""

    name = "OpenRouter"
    default_model = "meta-llama/llama-3.3-70b-instruct"
    default_base_url = "https://openrouter.ai/api/v1"
    api_key_env = "OPENROUTER_API_KEY"


class OpenAIProvider(OpenAICompatibleProvider):
    """LLM provider using the OpenAI API."""

    name = "OpenAI"


class MockProvider(LLMProvider):
    """Mock LLM provider for testing."""

    def __init__(
        self,
        responses: list[str] | None = None,
        model: str = "mock-model",
        fail_with: Exception | None = None,
        delay: float = 0.0,
    ):
        self.responses = responses or ["Mock response"]
        self.model = model
        self.fail_with = fail_with
        self.delay = delay
        self.call_count = 0
        self.last_messages: list[dict[str, str]] = []
        self.calls: list[dict[str, Any]] = []

    async def complete(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 1024,
        response_schema: dict[str, Any] | None = None,
    ) -> LLMResponse:
        """Return the next scripted response (cycling), or raise ``fail_with``."""
        self.last_messages = messages
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "response_schema": response_schema,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            self.call_count += 1
            raise self.fail_with

        response_idx = self.call_count % len(self.responses)
        content = self.responses[response_idx]
        self.call_count += 1

        return LLMResponse(
            content=content,
            model=self.model,
            input_tokens=len(str(messages)) // 4,
            output_tokens=len(content) // 4,
            latency_ms=10.0,
            raw_response=None,
        )


def create_provider(
    provider_type: str = "nebius",
    model: str | None = None,
    api_key: str | None = None,
    **kwargs,
) -> LLMProvider:
    """Factory function to create LLM providers."""
    providers = {
        "nebius": NebiusProvider,
        "openrouter": OpenRouterProvider,
        "openai": OpenAIProvider,
        "mock": MockProvider,
    }

    if provider_type not in providers:
        raise ValueError(f"Unknown provider: {provider_type}. Options: {list(providers.keys())}")

    provider_cls = providers[provider_type]

    provider_kwargs: dict[str, Any] = {}
    if model:
        provider_kwargs["model"] = model
    if api_key and provider_type != "mock":
        provider_kwargs["api_key"] = api_key
    provider_kwargs.update(kwargs)

    return provider_cls(**provider_kwargs)
