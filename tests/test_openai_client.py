"""
Tests for the OpenAI client wrapper.

Error translation is tested with a mocked SDK client; the health check hits
the real API and requires OPENAI_API_KEY.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from tenacity import wait_none

from keystone.clients.openai_client import OpenAIClient
from keystone.errors import OpenAIError, OpenAIModelError, OpenAIRateLimitError
from keystone.prompts.classify_thread import ThreadClassification

MESSAGES = [{'role': 'user', 'content': 'hello'}]


def _completion(parsed=None, refusal=None) -> MagicMock:
    message = MagicMock()
    message.parsed = parsed
    message.refusal = refusal
    choice = MagicMock()
    choice.message = message
    return MagicMock(choices=[choice])


def _client_with(parse: AsyncMock) -> OpenAIClient:
    client = OpenAIClient(api_key='sk-test')
    client._client = MagicMock()
    client._client.beta.chat.completions.parse = parse
    return client


class TestConstruction:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv('OPENAI_API_KEY', raising=False)
        with pytest.raises(ValueError):
            OpenAIClient(api_key=None)

    def test_default_model(self, monkeypatch):
        monkeypatch.delenv('OPENAI_CHAT_MODEL', raising=False)
        assert OpenAIClient(api_key='sk-test').chat_model == 'gpt-4o-mini'


class TestStructuredCompletion:
    @pytest.mark.asyncio
    async def test_returns_parsed_model(self):
        answer = ThreadClassification(
            is_due_from_me=False, type=None, confidence=90,
            rationale='Newsletter.', blocking_who=None, suggested_action=None,
        )
        parse = AsyncMock(return_value=_completion(parsed=answer))
        client = _client_with(parse)

        result = await client.chat_completion_structured(MESSAGES, ThreadClassification)

        assert result is answer
        assert parse.await_args.kwargs['response_format'] is ThreadClassification
        assert parse.await_args.kwargs['model'] == client.chat_model

    @pytest.mark.asyncio
    async def test_refusal_raises_model_error(self):
        client = _client_with(AsyncMock(return_value=_completion(refusal='I cannot help with that')))

        with pytest.raises(OpenAIModelError):
            await client.chat_completion_structured(MESSAGES, ThreadClassification)

    @pytest.mark.asyncio
    async def test_rate_limit_wrapped_after_retries(self):
        request = httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')
        error = openai.RateLimitError(
            'Rate limit reached',
            response=httpx.Response(429, request=request),
            body=None,
        )
        parse = AsyncMock(side_effect=error)
        client = _client_with(parse)

        with patch.object(OpenAIClient._parse.retry, 'wait', wait_none()):
            with pytest.raises(OpenAIRateLimitError) as exc_info:
                await client.chat_completion_structured(MESSAGES, ThreadClassification)

        assert parse.await_count == 3
        assert isinstance(exc_info.value, OpenAIError)
        assert exc_info.value.context['error_type'] == 'RateLimitError'

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self):
        request = httpx.Request('POST', 'https://api.openai.com/v1/chat/completions')
        error = openai.BadRequestError(
            'Invalid schema',
            response=httpx.Response(400, request=request),
            body=None,
        )
        parse = AsyncMock(side_effect=error)
        client = _client_with(parse)

        with pytest.raises(OpenAIError) as exc_info:
            await client.chat_completion_structured(MESSAGES, ThreadClassification)

        assert parse.await_count == 1
        assert exc_info.value.context['model'] == client.chat_model


class TestOpenAIHealth:
    """Live connectivity check."""

    @pytest.mark.asyncio
    async def test_health_check(self, openai_api_key: str):
        client = OpenAIClient(api_key=openai_api_key)
        try:
            result = await client.health_check()
            assert result['healthy'] is True
            assert 'chat_model' in result
        finally:
            await client.close()
