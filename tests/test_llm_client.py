"""
Tests for the LLM client wrapper, using httpx's mock transport.
"""

import asyncio
import json

import httpx
import pytest

from mailmind.config import Config
from mailmind.llm_client import (
    LLMError,
    LLMResponseFormatError,
    _extract_json_from_text,
    call_llm_json,
    call_llm_text,
)


MESSAGES = [{"role": "user", "content": "hi"}]


def chat_response(content, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            json={"choices": [{"message": {"role": "assistant", "content": content}}]},
        )

    return handler


def run_with_transport(coro_factory, handler):
    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await coro_factory(client)

    return asyncio.run(scenario())


@pytest.fixture
def config():
    return Config(openai_api_key="test-key", model_name="test-model")


class TestExtractJson:
    """Tests for _extract_json_from_text()."""

    def test_plain_json(self):
        assert _extract_json_from_text('{"a": 1}') == '{"a": 1}'

    def test_fenced_json(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nanything else?'

        assert json.loads(_extract_json_from_text(text)) == {"a": 1}

    def test_surrounding_commentary(self):
        text = 'Sure! {"a": {"b": 2}} Hope that helps.'

        assert json.loads(_extract_json_from_text(text)) == {"a": {"b": 2}}

    def test_empty_text_raises(self):
        with pytest.raises(LLMResponseFormatError):
            _extract_json_from_text("   ")

    def test_no_object_raises(self):
        with pytest.raises(LLMResponseFormatError):
            _extract_json_from_text("I cannot help with that.")


class TestCallLlm:
    """Tests for call_llm_json() and call_llm_text()."""

    def test_json_call_sends_model_and_json_mode(self, config):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return chat_response('```json\n{"subject": "Hi"}\n```')(request)

        result = run_with_transport(
            lambda client: call_llm_json(config, MESSAGES, max_tokens=50, client=client),
            handler,
        )

        assert result == {"subject": "Hi"}
        assert seen["auth"] == "Bearer test-key"
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["max_tokens"] == 50
        assert seen["body"]["response_format"] == {"type": "json_object"}

    def test_text_call_strips_output(self, config):
        result = run_with_transport(
            lambda client: call_llm_text(config, MESSAGES, client=client),
            chat_response("  A summary.\n"),
        )

        assert result == "A summary."

    def test_non_json_content_is_a_format_error(self, config):
        with pytest.raises(LLMResponseFormatError):
            run_with_transport(
                lambda client: call_llm_json(config, MESSAGES, client=client),
                chat_response("{not really json}"),
            )

    def test_json_array_is_a_format_error(self, config):
        with pytest.raises(LLMResponseFormatError):
            run_with_transport(
                lambda client: call_llm_json(config, MESSAGES, client=client),
                chat_response("[1, 2]"),
            )

    def test_http_error_raises_llm_error(self, config):
        with pytest.raises(LLMError) as excinfo:
            run_with_transport(
                lambda client: call_llm_text(config, MESSAGES, client=client),
                chat_response("rate limited", status_code=429),
            )

        assert not isinstance(excinfo.value, LLMResponseFormatError)

    def test_missing_choices_raises_llm_error(self, config):
        with pytest.raises(LLMError):
            run_with_transport(
                lambda client: call_llm_text(config, MESSAGES, client=client),
                lambda request: httpx.Response(200, json={"choices": []}),
            )

    def test_missing_api_key_raises_before_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        with pytest.raises(LLMError):
            run_with_transport(
                lambda client: call_llm_text(Config(openai_api_key=""), MESSAGES, client=client),
                handler,
            )

        assert calls == []
