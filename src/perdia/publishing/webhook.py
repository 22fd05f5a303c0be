"""Webhook publish transport (e.g. an N8N flow that posts to WordPress)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from perdia.storage.models import Article

logger = logging.getLogger(__name__)


@dataclass
class PublishResult:
    """Outcome of a publish attempt."""

    success: bool
    error: str | None = None
    external_ref: str | None = None


class WebhookPublisher:
    """POSTs article payloads to a publishing webhook."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @staticmethod
    def payload(article: Article, *, status: str = "publish") -> dict:
        return {
            "article_id": article.id,
            "title": article.title,
            "content": article.content,
            "excerpt": article.meta_description,
            "focus_keyword": article.focus_keyword,
            "author": article.contributor_name,
            "faqs": article.faqs,
            "status": status,
        }

    async def publish(self, article: Article) -> PublishResult:
        """Send the article; a non-2xx reply is a failed result, not an exception."""
        if not self._url:
            return PublishResult(success=False, error="No publish webhook configured")

        resp = await self._client.post(self._url, json=self.payload(article))
        if resp.is_error:
            logger.warning("Webhook rejected article %s: HTTP %s", article.id, resp.status_code)
            return PublishResult(success=False, error=f"HTTP {resp.status_code}: {resp.text[:200]}")

        return PublishResult(success=True, external_ref=_external_ref(resp))

    async def close(self) -> None:
        await self._client.aclose()


def _external_ref(resp: httpx.Response) -> str | None:
    """Published URL or id from a 2xx reply.

    Workflow webhooks may answer with an object, a list of items or a bare
    value; only the first object found is inspected.
    """
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, list):
        data = next((item for item in data if isinstance(item, dict)), None)
    if not isinstance(data, dict):
        return None
    ref = data.get("url") or data.get("link") or data.get("id")
    return str(ref) if ref else None
