"""Tests for the strand.llm package.

Covers the OpenAI-compatible provider (payload translation, response
parsing, retry and error mapping over ``httpx.MockTransport``) and the
explicit ModelRegistry.
"""

from __future__ import annotations

import json

import httpx
import pytest

from strand.exceptions import ModelNotFoundError, StrandError
from strand.llm.errors import (
    LLMAuthError,
    LLMClientError,
    LLMConfigError,
    LLMRateLimitError,
    LLMResponseError,
)
from strand.llm.models import FunctionDeclaration, LlmRequest
from strand.llm.openai import OpenAILlm
from strand.llm.protocols import BaseLlm
from strand.llm.registry import ModelRegistry
from strand.models.config import GenerationConfig
from strand.models.content import Content, Part
from tests.conftest import ScriptedLlm


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------

def _success_response(content: str | None = "Hello!", tool_calls=None, finish_reason="stop") -> dict:
    message: dict = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    return {
        "id": "chatcmpl-test123",
        "object": "chat.completion",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def _make_llm(handler, max_retries: int = 3) -> OpenAILlm:
    return OpenAILlm(
        model="gpt-test",
        api_key="test-key",
        base_url="http://test-api/v1",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture(autouse=True)
def _no_retry_sleep(monkeypatch):
    monkeypatch.setattr("time.sleep", lambda _seconds: None)


def _request(text: str = "hi") -> LlmRequest:
    return LlmRequest(contents=[Content.user(text)])


# ===========================================================================
# Error hierarchy
# ===========================================================================

class TestErrorHierarchy:
    def test_all_errors_are_strand_errors(self):
        for error_class in [LLMClientError, LLMConfigError, LLMRateLimitError,
                            LLMAuthError, LLMResponseError]:
            assert issubclass(error_class, StrandError)

    def test_rate_limit_error_has_retry_after(self):
        err = LLMRateLimitError("rate limited", retry_after=30.0)
        assert err.retry_after == 30.0
        assert "30.0s" in str(err)


# ===========================================================================
# OpenAILlm
# ===========================================================================

class TestOpenAILlmConfig:
    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("STRAND_OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMConfigError):
            OpenAILlm()

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("STRAND_OPENAI_API_KEY", "env-key")
        monkeypatch.setenv("STRAND_OPENAI_BASE_URL", "http://custom-api/v1/")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=_success_response())

        llm = OpenAILlm(transport=httpx.MockTransport(handler))
        list(llm.generate(_request()))
        assert seen == {"url": "http://custom-api/v1/chat/completions", "auth": "Bearer env-key"}
        llm.close()

    def test_satisfies_protocol(self):
        with _make_llm(lambda r: httpx.Response(200, json=_success_response())) as llm:
            assert isinstance(llm, BaseLlm)


class TestOpenAILlmPayload:
    def test_system_and_messages(self):
        llm = _make_llm(lambda r: httpx.Response(200, json=_success_response()))
        request = LlmRequest(
            system_instruction="Be brief.",
            contents=[Content.user("hi"), Content.model("hello")],
            config=GenerationConfig(temperature=0.2, stop_sequences=("END",)),
        )
        payload = llm.build_payload(request)
        assert payload["model"] == "gpt-test"
        assert payload["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ]
        assert payload["temperature"] == 0.2
        assert payload["stop"] == ["END"]
        assert "tools" not in payload
        llm.close()

    def test_tool_calls_and_responses(self):
        llm = _make_llm(lambda r: httpx.Response(200, json=_success_response()))
        request = LlmRequest(
            contents=[
                Content(role="model", parts=[Part.from_function_call("add", {"a": 1}, id="c1")]),
                Content(role="user", parts=[Part.from_function_response("add", {"result": 1}, id="c1")]),
            ],
            declarations=[FunctionDeclaration(name="add", description="Add.")],
        )
        payload = llm.build_payload(request)
        call_message, tool_message = payload["messages"]
        assert call_message["tool_calls"][0]["function"] == {
            "name": "add", "arguments": json.dumps({"a": 1})
        }
        assert tool_message == {"role": "tool", "tool_call_id": "c1", "content": json.dumps({"result": 1})}
        assert payload["tools"][0]["function"]["parameters"] == {"type": "object", "properties": {}}
        llm.close()

    def test_request_model_overrides_default(self):
        llm = _make_llm(lambda r: httpx.Response(200, json=_success_response()))
        assert llm.build_payload(LlmRequest(model="gpt-other"))["model"] == "gpt-other"
        llm.close()


class TestOpenAILlmParse:
    def test_text_reply(self):
        response = OpenAILlm.parse_response(_success_response("Hi there"))
        assert response.content.role == "model"
        assert response.content.text == "Hi there"
        assert response.turn_complete is True
        assert response.usage.total_tokens == 15

    def test_tool_call_reply(self):
        data = _success_response(
            None,
            tool_calls=[
                {"id": "call_x", "function": {"name": "add", "arguments": '{"a": 2}'}},
                {"function": {"name": "sub", "arguments": "not json"}},
            ],
            finish_reason="tool_calls",
        )
        calls = [p.function_call for p in OpenAILlm.parse_response(data).content.parts]
        assert (calls[0].id, calls[0].name, calls[0].args) == ("call_x", "add", {"a": 2})
        assert (calls[1].id, calls[1].args) == ("call_1", {"_raw": "not json"})

    def test_length_finish_sets_error_code(self):
        response = OpenAILlm.parse_response(_success_response("cut", finish_reason="length"))
        assert response.error_code == "length"

    def test_empty_reply_has_no_content(self):
        assert OpenAILlm.parse_response(_success_response(None)).content is None

    def test_bad_format(self):
        with pytest.raises(LLMResponseError):
            OpenAILlm.parse_response({"choices": []})


class TestOpenAILlmRetry:
    def test_retry_on_429_then_success(self):
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return httpx.Response(429, json={"error": "slow"}, headers={"Retry-After": "1"})
            return httpx.Response(200, json=_success_response())

        with _make_llm(handler) as llm:
            responses = list(llm.generate(_request()))
        assert call_count == 2
        assert responses[0].content.text == "Hello!"

    def test_retry_on_503_exhausts(self):
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return httpx.Response(503, json={"error": "down"})

        with _make_llm(handler, max_retries=2) as llm:
            with pytest.raises(httpx.HTTPStatusError):
                list(llm.generate(_request()))
        assert call_count == 2

    @pytest.mark.parametrize("status", [401, 403])
    def test_no_retry_on_auth_errors(self, status):
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return httpx.Response(status, json={"error": "denied"})

        with _make_llm(handler) as llm:
            with pytest.raises(LLMAuthError):
                list(llm.generate(_request()))
        assert call_count == 1

    def test_no_retry_on_400(self):
        call_count = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal call_count
            call_count += 1
            return httpx.Response(400, json={"error": "bad"})

        with _make_llm(handler) as llm:
            with pytest.raises(httpx.HTTPStatusError):
                list(llm.generate(_request()))
        assert call_count == 1

    def test_missing_choices(self):
        with _make_llm(lambda r: httpx.Response(200, json={"oops": True})) as llm:
            with pytest.raises(LLMResponseError):
                list(llm.generate(_request()))


# ===========================================================================
# ModelRegistry
# ===========================================================================

class TestModelRegistry:
    def test_resolve_by_pattern(self):
        registry = ModelRegistry()
        registry.register(r"scripted-.*", lambda name: ScriptedLlm(model=name))
        llm = registry.resolve("scripted-1")
        assert llm.model == "scripted-1"
        assert "scripted-2" in registry
        assert "other" not in registry

    def test_resolved_instances_are_cached(self):
        registry = ModelRegistry()
        registry.register(r".*", lambda name: ScriptedLlm(model=name))
        assert registry.resolve("a") is registry.resolve("a")

    def test_latest_registration_wins(self):
        registry = ModelRegistry()
        first, second = ScriptedLlm(model="m"), ScriptedLlm(model="m")
        registry.register(r"m", lambda name: first)
        registry.register(r"m", lambda name: second)
        assert registry.resolve("m") is second

    def test_register_instance(self):
        registry = ModelRegistry()
        llm = ScriptedLlm(model="gpt-4o.mini")
        registry.register_instance(llm)
        assert registry.resolve("gpt-4o.mini") is llm
        with pytest.raises(ModelNotFoundError):
            registry.resolve("gpt-4oXmini")

    def test_unknown_model(self):
        with pytest.raises(ModelNotFoundError):
            ModelRegistry().resolve("nope")
