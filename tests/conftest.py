"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from perdia.config import Settings
from perdia.llm.client import ClaudeClient
from perdia.publishing.webhook import PublishResult
from perdia.quality.analyzer import count_words
from perdia.quality.structure import heading_structure, link_sets
from perdia.revision.providers import GeneratedRevision
from perdia.storage.models import Article, ArticleStatus, RiskLevel
from perdia.storage.store import ArticleStore
from perdia.storage.versions import VersionStore


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    (tmp_path / "data").mkdir()
    return tmp_path / "data"


@pytest.fixture
def settings(tmp_data_dir: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        anthropic_api_key="test-key-not-real",
        xai_api_key="test-xai-key",
        stealthgpt_api_key="test-stealth-key",
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        temperature=0.7,
        retry_attempts=2,
        db_path=tmp_data_dir / "test.db",
    )


@pytest.fixture
def store(settings: Settings) -> ArticleStore:
    return ArticleStore(settings.db_path)


@pytest.fixture
def versions(store: ArticleStore) -> VersionStore:
    return VersionStore(store)


@pytest.fixture
def mock_claude_client(settings: Settings) -> ClaudeClient:
    """Create a ClaudeClient with a mocked Anthropic SDK."""
    client = ClaudeClient(settings)
    # Replace the internal Anthropic client with a mock
    mock_anthropic = MagicMock()
    mock_anthropic.messages.create = AsyncMock()
    client._client = mock_anthropic
    return client


def make_mock_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
    """Helper to create a mock Anthropic API response."""
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]
    mock_response.usage.input_tokens = input_tokens
    mock_response.usage.output_tokens = output_tokens
    return mock_response


def build_html(
    words: int = 1600,
    *,
    headings: int = 4,
    internal_links: int = 3,
    external_links: int = 2,
    sentence_length: int = 16,
) -> str:
    """HTML body with exact word, heading and link counts.

    Headings and link anchors carry a one-word label, so they count
    toward ``words``.
    """
    parts: list[str] = []
    budget = words
    for i in range(headings):
        parts.append(f"<h2>Section{i}</h2>")
    for i in range(internal_links):
        parts.append(f'<p><a href="/degrees/program-{i}">program{i}</a></p>')
    for i in range(external_links):
        parts.append(f'<p><a href="https://bls.gov/stats/{i}">source{i}</a></p>')
    budget -= headings + internal_links + external_links

    sentences: list[str] = []
    while budget > 0:
        size = min(sentence_length, budget)
        sentences.append(" ".join(["word"] * size) + ".")
        budget -= size
    parts.append("<p>" + " ".join(sentences) + "</p>")
    return "\n".join(parts)


def make_faqs(count: int) -> list[dict]:
    return [{"question": f"Question {i}?", "answer": f"Answer {i}."} for i in range(count)]


def make_article(content: str | None = None, **overrides) -> Article:
    """Build an unsaved article whose derived fields match its content."""
    html = content if content is not None else build_html()
    internal, external = link_sets(html)
    faqs = overrides.pop("faqs", make_faqs(3))
    fields = {
        "title": "Online MBA Programs Guide",
        "url": "https://www.geteducated.com/online-mba-guide",
        "meta_description": "Compare accredited online MBA programs.",
        "content": html,
        "word_count": count_words(html),
        "focus_keyword": "online mba",
        "heading_structure_json": json.dumps(heading_structure(html)),
        "faqs_json": json.dumps(faqs),
        "internal_links_json": json.dumps(internal),
        "external_links_json": json.dumps(external),
        "topics_json": json.dumps(["business", "mba"]),
        "contributor_name": "Tony Huffman",
        "quality_score": 90,
        "risk_level": RiskLevel.LOW,
        "status": ArticleStatus.READY_TO_PUBLISH,
        "created_at": datetime.now(),
    }
    fields.update(overrides)
    return Article(**fields)


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeGenerator:
    def __init__(self, name: str, result: GeneratedRevision | Exception) -> None:
        self.name = name
        self._result = result
        self.requests: list = []

    async def generate(self, request) -> GeneratedRevision:
        self.requests.append(request)
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakeHumanizer:
    def __init__(self, name: str, result: str | Exception) -> None:
        self.name = name
        self._result = result
        self.calls: list[tuple[str, str]] = []

    async def humanize(self, content: str, style: str) -> str:
        self.calls.append((content, style))
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakeEnricher:
    name = "catalog"

    def __init__(self, result: str | Exception) -> None:
        self._result = result
        self.calls: list[tuple[str, list[str], list[str]]] = []

    async def suggest_links(self, content, topic_hints, *, exclude_urls=()):
        self.calls.append((content, list(topic_hints), list(exclude_urls)))
        if isinstance(self._result, Exception):
            raise self._result
        return self._result


class FakePublisher:
    """Publishes successfully unless the article id is in ``fail_ids``."""

    def __init__(self, fail_ids: set[int] | None = None, raise_ids: set[int] | None = None) -> None:
        self.fail_ids = fail_ids or set()
        self.raise_ids = raise_ids or set()
        self.published: list[int] = []

    async def publish(self, article: Article) -> PublishResult:
        if article.id in self.raise_ids:
            raise ConnectionError("webhook unreachable")
        if article.id in self.fail_ids:
            return PublishResult(success=False, error="HTTP 500")
        self.published.append(article.id)
        return PublishResult(success=True, external_ref=f"https://example.com/p/{article.id}")
