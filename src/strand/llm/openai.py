"""Built-in OpenAI-compatible model provider on httpx with tenacity retry.

Translates an ``LlmRequest`` into a chat-completions payload and the reply
back into an ``LlmResponse``. Reads configuration from constructor
arguments or environment variables.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterator

import httpx
import tenacity

from strand.llm.errors import (
    LLMAuthError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from strand.llm.models import LlmRequest, LlmResponse, UsageMetadata
from strand.models.content import Content, FunctionCall, Part

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
_AUTH_ERROR_STATUS_CODES = {401, 403}


def _is_retryable(exc: BaseException) -> bool:
    """Check if an exception is retryable.

    Retryable: 429, 500, 502, 503, 504, connection errors.
    Not retryable: 401, 403, 400, other client errors.
    """
    if isinstance(exc, LLMAuthError):
        return False
    if isinstance(exc, LLMRateLimitError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout))


class OpenAILlm:
    """Model provider for OpenAI-compatible chat completion APIs.

    Implements the BaseLlm protocol. Streaming is not used: ``generate``
    always yields a single final response.

    Usage::

        registry.register(r"gpt-.*", lambda name: OpenAILlm(model=name))
    """

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 120.0,
        max_retries: int = 3,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            model: Model name sent with every request.
            api_key: API key. Falls back to STRAND_OPENAI_API_KEY env var.
            base_url: API base URL. Falls back to STRAND_OPENAI_BASE_URL env
                var, then to https://api.openai.com/v1.
            timeout: Request timeout in seconds.
            max_retries: Maximum attempts for retryable errors.
            transport: Optional httpx transport (used by tests).

        Raises:
            LLMConfigError: If no API key is provided or found in environment.
        """
        self.model = model
        self._api_key = api_key or os.environ.get("STRAND_OPENAI_API_KEY", "")
        if not self._api_key:
            raise LLMConfigError(
                "No API key provided. Pass api_key= or set STRAND_OPENAI_API_KEY "
                "environment variable."
            )
        self._base_url = (
            base_url
            or os.environ.get("STRAND_OPENAI_BASE_URL", "https://api.openai.com/v1")
        ).rstrip("/")
        self._max_retries = max_retries
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
        )

    def generate(self, request: LlmRequest, stream: bool = False) -> Iterator[LlmResponse]:
        """Send the request with retry and yield the parsed response.

        Uses tenacity.Retrying programmatically (not as decorator) so that
        max_retries is configurable per-instance.
        """
        retryer = tenacity.Retrying(
            retry=tenacity.retry_if_exception(_is_retryable),
            wait=(
                tenacity.wait_exponential(multiplier=1, min=1, max=30)
                + tenacity.wait_random(0, 2)
            ),
            stop=tenacity.stop_after_attempt(self._max_retries),
            before_sleep=tenacity.before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        data = retryer(self._post, self.build_payload(request))
        yield self.parse_response(data)

    def _post(self, payload: dict[str, Any]) -> dict:
        """Execute a single chat completion request (no retry)."""
        response = self._client.post(f"{self._base_url}/chat/completions", json=payload)

        if response.status_code in _AUTH_ERROR_STATUS_CODES:
            raise LLMAuthError(
                f"Authentication failed: HTTP {response.status_code} - "
                f"{response.text}"
            )

        if response.status_code == 429:
            retry_after_raw = response.headers.get("Retry-After")
            retry_after: float | None = None
            if retry_after_raw is not None:
                try:
                    retry_after = float(retry_after_raw)
                except (ValueError, TypeError):
                    pass
            raise LLMRateLimitError(
                f"Rate limited: HTTP 429 - {response.text}",
                retry_after=retry_after,
            )

        response.raise_for_status()

        data = response.json()
        if "choices" not in data:
            raise LLMResponseError(
                f"Unexpected response format: missing 'choices' key. "
                f"Response: {data}"
            )
        return data

    # ------------------------------------------------------------------
    # Translation
    # ------------------------------------------------------------------

    def build_payload(self, request: LlmRequest) -> dict[str, Any]:
        """Translate an LlmRequest into a chat-completions payload."""
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        for content in request.contents:
            messages.extend(_content_to_messages(content))

        payload: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": messages,
        }
        if request.declarations:
            payload["tools"] = [d.to_openai() for d in request.declarations]
        config = request.config.to_dict()
        if "stop_sequences" in config:
            config["stop"] = config.pop("stop_sequences")
        payload.update(config)
        return payload

    @staticmethod
    def parse_response(data: dict) -> LlmResponse:
        """Translate a chat-completions reply into an LlmResponse.

        Raises:
            LLMResponseError: If the reply has no usable first choice.
        """
        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMResponseError(
                f"Cannot extract message from response: {exc}. Response: {data}"
            ) from exc

        parts: list[Part] = []
        if message.get("content"):
            parts.append(Part(text=message["content"]))
        for i, tc in enumerate(message.get("tool_calls") or []):
            raw_args = tc["function"].get("arguments") or "{}"
            try:
                args = json.loads(raw_args) if isinstance(raw_args, str) else raw_args
            except (json.JSONDecodeError, TypeError):
                args = {"_raw": raw_args}
            parts.append(
                Part(
                    function_call=FunctionCall(
                        id=tc.get("id") or f"call_{i}",
                        name=tc["function"]["name"],
                        args=args,
                    )
                )
            )

        usage = data.get("usage")
        finish_reason = choice.get("finish_reason")
        return LlmResponse(
            content=Content(role="model", parts=parts) if parts else None,
            turn_complete=finish_reason is not None,
            usage=UsageMetadata(**{
                k: usage.get(k, 0)
                for k in ("prompt_tokens", "completion_tokens", "total_tokens")
            }) if usage else None,
            error_code="length" if finish_reason == "length" else None,
        )

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()

    def __enter__(self) -> OpenAILlm:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _content_to_messages(content: Content) -> list[dict[str, Any]]:
    """Translate one Content into one or more chat messages."""
    text = "".join(p.text for p in content.parts if p.text and not p.thought)
    calls = [p.function_call for p in content.parts if p.function_call]
    responses = [p.function_response for p in content.parts if p.function_response]

    if responses:
        return [
            {
                "role": "tool",
                "tool_call_id": r.id or r.name,
                "content": json.dumps(r.response, default=str),
            }
            for r in responses
        ]
    if content.role == "model":
        message: dict[str, Any] = {"role": "assistant", "content": text or None}
        if calls:
            message["tool_calls"] = [
                {
                    "id": c.id or c.name,
                    "type": "function",
                    "function": {"name": c.name, "arguments": json.dumps(c.args, default=str)},
                }
                for c in calls
            ]
        return [message]
    return [{"role": "user", "content": text}]
