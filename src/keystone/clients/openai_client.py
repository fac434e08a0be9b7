"""
Thin async wrapper over the OpenAI SDK for thread classification.

Only structured output is used: the classifier hands over a pydantic model
and gets back a validated instance of it. Transient API failures (429,
5xx, timeouts, dropped connections) are retried three times; anything
that still fails surfaces as an OpenAIError so the classifier can fall
back to its heuristic.
"""

import os
from typing import TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import OpenAIModelError, wrap_openai_error

T = TypeVar('T', bound=BaseModel)

_TRANSIENT = (
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


class OpenAIClient:
    """
    Structured-output chat client.

    OPENAI_API_KEY is required; OPENAI_CHAT_MODEL picks the model
    (gpt-4o-mini when unset).
    """

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.getenv('OPENAI_API_KEY')
        if not self.api_key:
            raise ValueError('OPENAI_API_KEY environment variable is required')

        self.chat_model = chat_model or os.getenv('OPENAI_CHAT_MODEL', 'gpt-4o-mini')
        self._client = AsyncOpenAI(api_key=self.api_key, timeout=timeout)

    @retry(
        retry=retry_if_exception_type(_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _parse(self, **kwargs):
        return await self._client.beta.chat.completions.parse(**kwargs)

    async def chat_completion_structured(
        self,
        messages: list[dict[str, str]],
        response_model: type[T],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> T:
        """
        Run one chat completion and return it parsed as response_model.

        Raises:
            OpenAIRateLimitError: Still rate limited after the retries.
            OpenAIModelError: The model declined to answer.
            OpenAIError: Any other API failure.
            ValueError: The response carried no parsed content.
        """
        model = model or self.chat_model
        try:
            response = await self._parse(
                model=model,
                messages=messages,  # type: ignore
                response_format=response_model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.OpenAIError as e:
            raise wrap_openai_error(e, context={'model': model}) from e

        message = response.choices[0].message
        if message.refusal:
            raise OpenAIModelError(
                f'OpenAI model refused request: {message.refusal}',
                context={'model': model},
            )
        if message.parsed is None:
            raise ValueError('Failed to parse structured response')
        return message.parsed

    async def health_check(self) -> dict[str, bool | str]:
        """Look up the configured model; reports rather than raises on failure."""
        try:
            await self._client.models.retrieve(self.chat_model)
            return {'healthy': True, 'chat_model': self.chat_model}
        except Exception as e:
            return {'healthy': False, 'error': str(e)}

    async def close(self):
        await self._client.close()
