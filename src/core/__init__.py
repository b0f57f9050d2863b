"""Core module with shared abstractions for the AI player."""

from .parsing import extract_json_object, strip_code_fences
from .llm import (
    ProviderError,
    LLMProvider,
    LLMResponse,
    OpenAICompatibleProvider,
    NebiusProvider,
    OpenRouterProvider,
    OpenAIProvider,
    MockProvider,
    create_provider,
)

__all__ = [
    # Parsing
    "extract_json_object",
    "strip_code_fences",
    # LLM providers
    "ProviderError",
    "LLMProvider",
    "LLMResponse",
    "OpenAICompatibleProvider",
    "NebiusProvider",
    "OpenRouterProvider",
    "OpenAIProvider",
    "MockProvider",
    "create_provider",
]
