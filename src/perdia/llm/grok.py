"""Async client for xAI's OpenAI-compatible chat completions API."""

from __future__ import annotations

import logging

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from perdia.config import Settings

logger = logging.getLogger(__name__)


def is_transient_http_error(exc: BaseException) -> bool:
    """Retry network failures, rate limits and server errors only."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class GrokClient:
    """Chat completions against Grok with bounded retries."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.grok_base_url,
            headers={
                "Authorization": f"Bearer {settings.xai_api_key}",
                "Content-Type": "application/json",
            },
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        )
        self._model = settings.grok_model
        self._max_tokens = settings.grok_max_tokens
        self._attempts = settings.retry_attempts

    @property
    def model(self) -> str:
        return self._model

    async def chat(
        self,
        messages: list[dict],
        *,
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        """Return the assistant message text for a chat exchange."""
        payload = {
            "model": self._model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or self._max_tokens,
        }
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_transient_http_error),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=1, max=20),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                resp = await self._client.post("/chat/completions", json=payload)
                resp.raise_for_status()

        data = resp.json()
        return data["choices"][0]["message"]["content"]

    async def close(self) -> None:
        await self._client.aclose()
