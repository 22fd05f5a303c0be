"""Generation, humanization and link-enrichment providers.

The orchestrator only depends on the three protocols below; the concrete
classes adapt the Grok, Claude and StealthGPT clients to them.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from perdia.errors import EnrichmentFailed
from perdia.llm.client import ClaudeClient
from perdia.llm.grok import GrokClient
from perdia.llm.prompts import strip_fences, user_message
from perdia.llm.stealthgpt import StealthGPTClient
from perdia.revision.strategies import ProviderRequest
from perdia.storage.store import ArticleStore

logger = logging.getLogger(__name__)

_BLOCK_END_RE = re.compile(r"(?<=</p>)|(?<=</ul>)|(?<=</ol>)|(?<=</table>)|\n\n", re.IGNORECASE)


@dataclass
class GeneratedRevision:
    """Revised article fields; ``None`` keeps the article's current value."""

    content: str
    title: str | None = None
    meta_description: str | None = None
    focus_keyword: str | None = None
    faqs: list[dict] | None = None
    changes_summary: str = "Content revised"


class GenerationProvider(Protocol):
    name: str

    async def generate(self, request: ProviderRequest) -> GeneratedRevision: ...


class HumanizationProvider(Protocol):
    name: str

    async def humanize(self, content: str, style: str) -> str: ...


class LinkEnricher(Protocol):
    name: str

    async def suggest_links(
        self, content: str, topic_hints: Sequence[str], *, exclude_urls: Sequence[str] = ()
    ) -> str: ...


def _clean_faqs(raw: object) -> list[dict] | None:
    if not isinstance(raw, list):
        return None
    faqs = [
        {"question": str(item["question"]), "answer": str(item.get("answer", ""))}
        for item in raw
        if isinstance(item, dict) and item.get("question")
    ]
    return faqs or None


def parse_generation_response(text: str) -> GeneratedRevision:
    """Parse a JSON revision payload, degrading to plain content otherwise."""
    body = strip_fences(text)
    if not body:
        raise ValueError("Empty generation response")
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return GeneratedRevision(content=body)

    if not isinstance(data, dict) or not data.get("content"):
        return GeneratedRevision(content=body)

    return GeneratedRevision(
        content=str(data["content"]),
        title=data.get("title") or None,
        meta_description=data.get("meta_description") or None,
        focus_keyword=data.get("focus_keyword") or None,
        faqs=_clean_faqs(data.get("faqs")),
        changes_summary=data.get("changesSummary")
        or data.get("changes_summary")
        or "Content revised",
    )


class GrokGenerator:
    """Primary generation: the full revision prompt, JSON answer expected."""

    name = "grok"

    def __init__(self, client: GrokClient, *, temperature: float = 0.7) -> None:
        self._client = client
        self._temperature = temperature

    async def generate(self, request: ProviderRequest) -> GeneratedRevision:
        text = await self._client.chat(
            [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.prompt},
            ],
            temperature=self._temperature,
        )
        return parse_generation_response(text)


class ClaudeReviser:
    """Fallback generation: original content plus instruction text in, HTML out."""

    name = "claude"

    def __init__(self, client: ClaudeClient) -> None:
        self._client = client

    async def generate(self, request: ProviderRequest) -> GeneratedRevision:
        messages = user_message(
            "revise_with_instructions.j2",
            content=request.original_content,
            instructions=request.prompt,
        )
        text = await self._client.generate(messages, system=request.system)
        content = strip_fences(text)
        if not content:
            raise ValueError("Empty revision response")
        return GeneratedRevision(content=content, changes_summary="Content revised using Claude")


def split_into_chunks(content: str, max_chars: int = 1200) -> list[str]:
    """Split HTML into block-aligned chunks of roughly ``max_chars``."""
    chunks: list[str] = []
    current = ""
    for block in _BLOCK_END_RE.split(content):
        if not block or not block.strip():
            continue
        if current and len(current) + len(block) > max_chars:
            chunks.append(current.strip())
            current = ""
        current += block
    if current.strip():
        chunks.append(current.strip())
    return chunks


class StealthHumanizer:
    """Primary humanization: chunked StealthGPT rephrasing.

    Each chunk is rephrased up to ``max_iterations`` times, stopping early
    once the detection score reaches ``threshold``; the best-scoring
    rewrite is kept. A chunk that fails keeps its original text, but if
    every chunk fails the call fails.
    """

    name = "stealthgpt"

    def __init__(
        self,
        client: StealthGPTClient,
        *,
        mode: str = "High",
        max_iterations: int = 3,
        threshold: float = 90,
    ) -> None:
        self._client = client
        self._mode = mode
        self._max_iterations = max_iterations
        self._threshold = threshold

    async def _humanize_chunk(self, chunk: str, tone: str) -> str:
        best_text, best_score = chunk, -1.0
        current = chunk
        for iteration in range(1, self._max_iterations + 1):
            result = await self._client.stealthify(current, tone=tone, mode=self._mode)
            current = result.text
            if result.detection_score > best_score:
                best_text, best_score = result.text, result.detection_score
            if result.detection_score >= self._threshold:
                logger.debug("Chunk reached score %s after %d pass(es)", result.detection_score, iteration)
                break
        return best_text

    async def humanize(self, content: str, style: str) -> str:
        chunks = split_into_chunks(content)
        if not chunks:
            return content

        humanized: list[str] = []
        failures = 0
        for index, chunk in enumerate(chunks, 1):
            try:
                humanized.append(await self._humanize_chunk(chunk, style))
            except Exception as exc:  # noqa: BLE001 - per-chunk failures keep the original text
                failures += 1
                logger.warning("StealthGPT chunk %d/%d failed: %s", index, len(chunks), exc)
                humanized.append(chunk)

        if failures == len(chunks):
            raise RuntimeError(f"StealthGPT failed on all {failures} chunks")
        return "\n\n".join(humanized)


class ClaudeHumanizer:
    """Fallback humanization through Claude."""

    name = "claude"

    def __init__(self, client: ClaudeClient, *, temperature: float = 0.9) -> None:
        self._client = client
        self._temperature = temperature

    async def humanize(self, content: str, style: str) -> str:
        text = await self._client.generate(
            user_message("humanize.j2", content=content, style=style),
            temperature=self._temperature,
        )
        result = strip_fences(text)
        if not result:
            raise ValueError("Empty humanization response")
        return result


class CatalogLinkEnricher:
    """Weave internal links to related catalog pages into the content."""

    name = "catalog"

    def __init__(
        self,
        store: ArticleStore,
        client: ClaudeClient,
        *,
        site_name: str = "GetEducated",
        max_targets: int = 10,
    ) -> None:
        self._store = store
        self._client = client
        self._site_name = site_name
        self._max_targets = max_targets

    async def suggest_links(
        self, content: str, topic_hints: Sequence[str], *, exclude_urls: Sequence[str] = ()
    ) -> str:
        entries = await self._store.find_catalog_entries(
            list(topic_hints), exclude_urls=list(exclude_urls), limit=self._max_targets
        )
        if not entries:
            logger.info("No catalog pages match %s; leaving links unchanged", list(topic_hints))
            return content

        messages = user_message(
            "link_insertion.j2", site_name=self._site_name, entries=entries, content=content
        )
        text = strip_fences(await self._client.generate(messages))
        if not text:
            raise EnrichmentFailed("Link insertion returned no content")
        return text
