"""Async client for the StealthGPT rephrasing API."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from perdia.config import Settings
from perdia.llm.grok import is_transient_http_error

logger = logging.getLogger(__name__)


@dataclass
class StealthResult:
    text: str
    detection_score: float  # higher reads as more human


class StealthGPTClient:
    """Wrapper around the ``/stealthify`` endpoint."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(
            base_url=settings.stealthgpt_base_url,
            headers={
                "api-token": settings.stealthgpt_api_key,
                "Content-Type": "application/json",
            },
            timeout=settings.provider_timeout_seconds,
            transport=transport,
        )
        self._attempts = settings.retry_attempts

    async def stealthify(
        self, prompt: str, *, tone: str, mode: str, business: bool = False
    ) -> StealthResult:
        payload = {
            "prompt": prompt,
            "rephrase": True,
            "tone": tone,
            "mode": mode,
            "business": business,
        }
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_transient_http_error),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=1, min=1, max=20),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                resp = await self._client.post("/stealthify", json=payload)
                resp.raise_for_status()

        data = resp.json()
        if not data.get("result"):
            raise ValueError("StealthGPT returned an empty result")
        return StealthResult(
            text=data["result"],
            detection_score=float(data.get("howLikelyToBeDetected") or 0),
        )

    async def close(self) -> None:
        await self._client.aclose()
