"""Async wrapper around the Anthropic Claude SDK."""

from __future__ import annotations

import logging

from anthropic import APIStatusError, AsyncAnthropic, AuthenticationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from perdia.config import Settings

logger = logging.getLogger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    """True for rate limits, server errors and connection failures.

    Authentication and other 4xx errors need a config or prompt change
    and are raised immediately.
    """
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, APIStatusError) and exc.status_code < 500:
        return exc.status_code == 429
    return True


class ClaudeClient:
    """Claude messages with bounded retries and token tracking."""

    def __init__(self, settings: Settings) -> None:
        self._client = AsyncAnthropic(api_key=settings.anthropic_api_key)
        self._model = settings.model
        self._max_tokens = settings.max_tokens
        self._temperature = settings.temperature
        self._attempts = settings.retry_attempts
        self._input_tokens = 0
        self._output_tokens = 0

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        messages: list[dict],
        *,
        system: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Send the messages to Claude and return the reply text."""
        request: dict = {
            "model": self._model,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
            "messages": messages,
        }
        if system:
            request["system"] = system

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=1, max=30),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                response = await self._client.messages.create(**request)

        self._input_tokens += response.usage.input_tokens
        self._output_tokens += response.usage.output_tokens
        return response.content[0].text

    @property
    def usage_summary(self) -> dict:
        return {
            "total_input_tokens": self._input_tokens,
            "total_output_tokens": self._output_tokens,
        }

    async def close(self) -> None:
        await self._client.close()
