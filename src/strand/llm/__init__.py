"""Model provider layer: request/response types, protocol, registry, adapters."""

from strand.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from strand.llm.models import FunctionDeclaration, LlmRequest, LlmResponse, UsageMetadata
from strand.llm.openai import OpenAILlm
from strand.llm.protocols import BaseLlm
from strand.llm.registry import ModelRegistry

__all__ = [
    "BaseLlm",
    "FunctionDeclaration",
    "LLMAuthError",
    "LLMClientError",
    "LLMConfigError",
    "LLMRateLimitError",
    "LLMResponseError",
    "LlmRequest",
    "LlmResponse",
    "ModelRegistry",
    "OpenAILlm",
    "UsageMetadata",
]
