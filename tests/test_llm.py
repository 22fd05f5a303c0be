"""Tests for the LLM clients, prompt rendering and provider adapters."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from perdia.config import Settings
from perdia.errors import EnrichmentFailed
from perdia.llm.client import ClaudeClient, _is_retryable
from perdia.llm.grok import GrokClient, is_transient_http_error
from perdia.llm.prompts import render, strip_fences, user_message
from perdia.llm.stealthgpt import StealthGPTClient, StealthResult
from perdia.revision.providers import (
    CatalogLinkEnricher,
    ClaudeHumanizer,
    ClaudeReviser,
    GrokGenerator,
    StealthHumanizer,
    parse_generation_response,
    split_into_chunks,
)
from perdia.revision.strategies import StrategyId, build_request
from perdia.storage.models import CatalogEntry
from perdia.storage.store import ArticleStore
from tests.conftest import make_article, make_mock_response

# ---------------------------------------------------------------------------
# Claude client
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_generate_returns_text(mock_claude_client: ClaudeClient) -> None:
    """Test that generate() returns the text from Claude's response."""
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Hello, this is a test response."
    )

    result = await mock_claude_client.generate(
        [{"role": "user", "content": "Say hello"}],
        system="You are a test assistant.",
    )

    assert result == "Hello, this is a test response."
    kwargs = mock_claude_client._client.messages.create.call_args.kwargs
    assert kwargs["system"] == "You are a test assistant."
    assert kwargs["max_tokens"] == 1024
    assert kwargs["temperature"] == 0.7


@pytest.mark.asyncio
async def test_generate_overrides_and_omits_empty_system(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.return_value = make_mock_response("ok")

    await mock_claude_client.generate(
        [{"role": "user", "content": "x"}], temperature=0.9, max_tokens=50
    )

    kwargs = mock_claude_client._client.messages.create.call_args.kwargs
    assert "system" not in kwargs
    assert kwargs["temperature"] == 0.9
    assert kwargs["max_tokens"] == 50


@pytest.mark.asyncio
async def test_usage_summary_accumulates(mock_claude_client: ClaudeClient) -> None:
    """Test that token usage accumulates across calls."""
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Response 1", input_tokens=50, output_tokens=100
    )
    await mock_claude_client.generate([{"role": "user", "content": "1"}])

    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "Response 2", input_tokens=75, output_tokens=150
    )
    await mock_claude_client.generate([{"role": "user", "content": "2"}])

    summary = mock_claude_client.usage_summary
    assert summary["total_input_tokens"] == 125
    assert summary["total_output_tokens"] == 250


@pytest.mark.asyncio
async def test_generate_retries_transient_error(mock_claude_client: ClaudeClient) -> None:
    create = mock_claude_client._client.messages.create
    create.side_effect = [ConnectionError("reset by peer"), make_mock_response("Recovered")]

    assert await mock_claude_client.generate([{"role": "user", "content": "hi"}]) == "Recovered"
    assert create.await_count == 2


@pytest.mark.asyncio
async def test_generate_gives_up_after_configured_attempts(mock_claude_client: ClaudeClient) -> None:
    create = mock_claude_client._client.messages.create
    create.side_effect = ConnectionError("reset by peer")

    with pytest.raises(ConnectionError):
        await mock_claude_client.generate([{"role": "user", "content": "hi"}])
    assert create.await_count == 2  # settings.retry_attempts


class TestRetryLogic:
    """Tests for the smart retry behavior in the clients."""

    def test_auth_error_not_retried(self) -> None:
        """Test that AuthenticationError is raised immediately, not retried."""
        from anthropic import AuthenticationError

        exc = AuthenticationError.__new__(AuthenticationError)
        assert _is_retryable(exc) is False

    def test_server_error_is_retryable(self) -> None:
        exc = Exception("Internal server error")
        assert _is_retryable(exc) is True

    def test_http_status_classification(self) -> None:
        request = httpx.Request("POST", "https://api.x.ai/v1/chat/completions")

        def status_error(code: int) -> httpx.HTTPStatusError:
            return httpx.HTTPStatusError(
                "err", request=request, response=httpx.Response(code, request=request)
            )

        assert is_transient_http_error(status_error(429))
        assert is_transient_http_error(status_error(503))
        assert not is_transient_http_error(status_error(401))
        assert is_transient_http_error(httpx.ConnectError("refused"))
        assert not is_transient_http_error(ValueError("bad json"))


# ---------------------------------------------------------------------------
# Grok and StealthGPT HTTP clients
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_grok_chat_posts_completion_request(settings: Settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"choices": [{"message": {"content": "revised text"}}]}
        )

    client = GrokClient(settings, transport=httpx.MockTransport(handler))
    text = await client.chat([{"role": "user", "content": "hi"}], temperature=0.5)
    await client.close()

    assert text == "revised text"
    assert seen[0].url.path == "/v1/chat/completions"
    assert seen[0].headers["Authorization"] == "Bearer test-xai-key"
    body = json.loads(seen[0].content)
    assert body["model"] == "grok-3"
    assert body["temperature"] == 0.5
    assert body["max_tokens"] == 8000


@pytest.mark.asyncio
async def test_grok_retries_server_errors(settings: Settings) -> None:
    responses = iter(
        [
            httpx.Response(503, json={"error": "busy"}),
            httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]}),
        ]
    )
    client = GrokClient(settings, transport=httpx.MockTransport(lambda r: next(responses)))

    assert await client.chat([{"role": "user", "content": "hi"}]) == "ok"
    await client.close()


@pytest.mark.asyncio
async def test_grok_does_not_retry_client_errors(settings: Settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    client = GrokClient(settings, transport=httpx.MockTransport(handler))
    with pytest.raises(httpx.HTTPStatusError):
        await client.chat([{"role": "user", "content": "hi"}])
    await client.close()
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_stealthify_payload_and_result(settings: Settings) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"result": "human text", "howLikelyToBeDetected": 93})

    client = StealthGPTClient(settings, transport=httpx.MockTransport(handler))
    result = await client.stealthify("robot text", tone="College", mode="High")
    await client.close()

    assert result == StealthResult("human text", 93.0)
    assert seen[0].headers["api-token"] == "test-stealth-key"
    assert json.loads(seen[0].content) == {
        "prompt": "robot text",
        "rephrase": True,
        "tone": "College",
        "mode": "High",
        "business": False,
    }


@pytest.mark.asyncio
async def test_stealthify_empty_result_raises(settings: Settings) -> None:
    client = StealthGPTClient(
        settings, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={}))
    )
    with pytest.raises(ValueError):
        await client.stealthify("text", tone="College", mode="High")
    await client.close()


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------


def test_render_revision_system_prompt() -> None:
    text = render("revision_system.j2", site_name="GetEducated", approved_authors=["Sara"])
    assert "GetEducated" in text
    assert "Use approved authors only: Sara" in text


def test_render_revision_prompt_per_strategy() -> None:
    article = make_article()
    for strategy, heading in [
        (StrategyId.FULL_REWRITE, "REVISION TYPE: Full Rewrite"),
        (StrategyId.UPDATE_LINKS, "REVISION TYPE: Update Links"),
    ]:
        request = build_request(article, strategy)
        assert heading in request.prompt
        assert '"changesSummary"' in request.prompt

    links = build_request(article, StrategyId.UPDATE_LINKS).prompt
    assert "Keep every existing link" not in links
    rewrite = build_request(article, StrategyId.FULL_REWRITE).prompt
    assert "Keep every existing FAQ" not in rewrite


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def test_parse_json_response() -> None:
    payload = {
        "title": "New title",
        "meta_description": "Meta",
        "content": "<h2>A</h2><p>Body</p>",
        "focus_keyword": "mba",
        "faqs": [{"question": "Q?", "answer": "A."}, {"answer": "no question"}],
        "changesSummary": "Tightened intro",
    }
    revision = parse_generation_response("```json\n" + json.dumps(payload) + "\n```")

    assert revision.title == "New title"
    assert revision.content == "<h2>A</h2><p>Body</p>"
    assert revision.faqs == [{"question": "Q?", "answer": "A."}]
    assert revision.changes_summary == "Tightened intro"


def test_parse_plain_text_degrades_to_content() -> None:
    revision = parse_generation_response("<h2>Just HTML</h2><p>No JSON here.</p>")
    assert revision.content == "<h2>Just HTML</h2><p>No JSON here.</p>"
    assert revision.title is None
    assert revision.faqs is None
    assert revision.changes_summary == "Content revised"


def test_parse_json_without_content_degrades() -> None:
    revision = parse_generation_response('{"title": "only a title"}')
    assert revision.content == '{"title": "only a title"}'


def test_parse_empty_response_raises() -> None:
    with pytest.raises(ValueError):
        parse_generation_response("  ``` ```  ")


def test_strip_fences() -> None:
    assert strip_fences("```html\n<p>x</p>\n```") == "<p>x</p>"
    assert strip_fences("  <p>x</p> ") == "<p>x</p>"


def test_user_message_wraps_rendered_template() -> None:
    messages = user_message("humanize.j2", content="<p>Tuition rose.</p>", style="conversational")
    assert len(messages) == 1
    assert messages[0]["role"] == "user"
    assert "experienced conversational writer" in messages[0]["content"]
    assert messages[0]["content"].endswith("OUTPUT ONLY THE REWRITTEN HTML CONTENT.")


def test_split_into_chunks_respects_blocks() -> None:
    paragraphs = [f"<p>{'word ' * 60}{i}</p>" for i in range(10)]
    chunks = split_into_chunks("".join(paragraphs), max_chars=700)

    assert len(chunks) > 1
    assert all(chunk.endswith("</p>") for chunk in chunks)
    assert "".join(chunks) == "".join(paragraphs)


# ---------------------------------------------------------------------------
# Provider adapters
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_grok_generator_sends_system_and_prompt() -> None:
    client = MagicMock()
    client.chat = AsyncMock(return_value=json.dumps({"content": "<p>new</p>"}))
    request = build_request(make_article(), StrategyId.REFRESH)

    revision = await GrokGenerator(client, temperature=0.6).generate(request)

    assert revision.content == "<p>new</p>"
    messages = client.chat.call_args.args[0]
    assert messages == [
        {"role": "system", "content": request.system},
        {"role": "user", "content": request.prompt},
    ]
    assert client.chat.call_args.kwargs["temperature"] == 0.6


@pytest.mark.asyncio
async def test_claude_reviser_wraps_original_content(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        "```html\n<p>Revised</p>\n```"
    )
    article = make_article()
    request = build_request(article, StrategyId.SEO_OPTIMIZE)

    revision = await ClaudeReviser(mock_claude_client).generate(request)

    assert revision.content == "<p>Revised</p>"
    assert revision.changes_summary == "Content revised using Claude"
    sent = mock_claude_client._client.messages.create.call_args.kwargs
    assert article.content in sent["messages"][0]["content"]
    assert "REVISION TYPE: SEO Optimization" in sent["messages"][0]["content"]


@pytest.mark.asyncio
async def test_claude_humanizer_uses_humanize_temperature(mock_claude_client: ClaudeClient) -> None:
    mock_claude_client._client.messages.create.return_value = make_mock_response("<p>warm</p>")

    text = await ClaudeHumanizer(mock_claude_client, temperature=0.9).humanize("<p>cold</p>", "College")

    assert text == "<p>warm</p>"
    sent = mock_claude_client._client.messages.create.call_args.kwargs
    assert sent["temperature"] == 0.9
    assert "College" in sent["messages"][0]["content"]


class FakeStealth:
    """Returns scripted scores per call; ``None`` raises."""

    def __init__(self, scores: list[float | None]) -> None:
        self._scores = iter(scores)
        self.calls = 0

    async def stealthify(self, prompt: str, *, tone: str, mode: str) -> StealthResult:
        self.calls += 1
        score = next(self._scores)
        if score is None:
            raise RuntimeError("stealth api down")
        return StealthResult(f"{prompt}|{score:g}", score)


@pytest.mark.asyncio
async def test_stealth_humanizer_stops_at_threshold() -> None:
    fake = FakeStealth([70, 95])
    humanizer = StealthHumanizer(fake, max_iterations=3, threshold=90)

    text = await humanizer.humanize("<p>one</p>", "College")

    assert fake.calls == 2
    assert text == "<p>one</p>|70|95"


@pytest.mark.asyncio
async def test_stealth_humanizer_keeps_best_iteration() -> None:
    fake = FakeStealth([80, 60, 70])
    text = await StealthHumanizer(fake, max_iterations=3, threshold=90).humanize(
        "<p>one</p>", "College"
    )
    assert fake.calls == 3
    assert text == "<p>one</p>|80"


@pytest.mark.asyncio
async def test_stealth_humanizer_failed_chunk_keeps_original() -> None:
    content = "<p>" + "a " * 700 + "</p>" + "<p>" + "b " * 700 + "</p>"
    fake = FakeStealth([None, 95])

    text = await StealthHumanizer(fake, max_iterations=1).humanize(content, "College")

    first, second = text.split("\n\n")
    assert first.startswith("<p>a a")
    assert not first.endswith("|95")
    assert second.endswith("|95")


@pytest.mark.asyncio
async def test_stealth_humanizer_all_chunks_failing_raises() -> None:
    with pytest.raises(RuntimeError):
        await StealthHumanizer(FakeStealth([None]), max_iterations=1).humanize(
            "<p>short</p>", "College"
        )


@pytest.mark.asyncio
async def test_catalog_enricher_prompts_with_matching_pages(
    store: ArticleStore, mock_claude_client: ClaudeClient
) -> None:
    await store.add_catalog_entry(CatalogEntry(url="/online-mba", title="Online MBA Rankings"))
    await store.add_catalog_entry(CatalogEntry(url="/self", title="MBA guide (this article)"))
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        '<p>See <a href="/online-mba">rankings</a>.</p>'
    )
    enricher = CatalogLinkEnricher(store, mock_claude_client)

    text = await enricher.suggest_links("<p>See rankings.</p>", ["mba"], exclude_urls=["/self"])

    assert text == '<p>See <a href="/online-mba">rankings</a>.</p>'
    prompt = mock_claude_client._client.messages.create.call_args.kwargs["messages"][0]["content"]
    assert "/online-mba" in prompt
    assert "/self" not in prompt


@pytest.mark.asyncio
async def test_catalog_enricher_without_matches_returns_content(
    store: ArticleStore, mock_claude_client: ClaudeClient
) -> None:
    text = await CatalogLinkEnricher(store, mock_claude_client).suggest_links(
        "<p>x</p>", ["nursing"]
    )
    assert text == "<p>x</p>"
    mock_claude_client._client.messages.create.assert_not_called()


@pytest.mark.asyncio
async def test_catalog_enricher_empty_reply_raises(
    store: ArticleStore, mock_claude_client: ClaudeClient
) -> None:
    await store.add_catalog_entry(CatalogEntry(url="/online-mba", title="Online MBA Rankings"))
    mock_claude_client._client.messages.create.return_value = make_mock_response("   ")

    with pytest.raises(EnrichmentFailed):
        await CatalogLinkEnricher(store, mock_claude_client).suggest_links("<p>x</p>", ["mba"])
