"""Tests for the webhook publisher and the CLI."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner
from rich.console import Console

from perdia.cli import main
from perdia.config import Settings
from perdia.publishing.webhook import WebhookPublisher
from perdia.revision.orchestrator import RevisionOrchestrator
from perdia.storage.models import ArticleStatus
from perdia.storage.store import ArticleStore
from perdia.storage.versions import VersionStore
from tests.conftest import FakeGenerator, build_html, make_article, make_faqs

# ---------------------------------------------------------------------------
# Webhook publisher
# ---------------------------------------------------------------------------


class TestWebhookPublisher:
    @pytest.mark.asyncio
    async def test_publish_posts_article_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"url": "https://www.geteducated.com/mba-guide"})

        article = make_article(id=7, faqs=make_faqs(2))
        publisher = WebhookPublisher(
            "https://hooks.example.com/publish", transport=httpx.MockTransport(handler)
        )
        result = await publisher.publish(article)
        await publisher.close()

        assert result.success is True
        assert result.external_ref == "https://www.geteducated.com/mba-guide"
        body = json.loads(seen[0].content)
        assert body["article_id"] == 7
        assert body["title"] == article.title
        assert body["author"] == "Tony Huffman"
        assert body["status"] == "publish"
        assert len(body["faqs"]) == 2

    @pytest.mark.asyncio
    async def test_error_status_is_failed_result(self) -> None:
        publisher = WebhookPublisher(
            "https://hooks.example.com/publish",
            transport=httpx.MockTransport(lambda r: httpx.Response(502, text="Bad gateway")),
        )
        result = await publisher.publish(make_article(id=1))
        await publisher.close()

        assert result.success is False
        assert result.error == "HTTP 502: Bad gateway"

    @pytest.mark.asyncio
    async def test_non_json_success_has_no_ref(self) -> None:
        publisher = WebhookPublisher(
            "https://hooks.example.com/publish",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, text="accepted")),
        )
        result = await publisher.publish(make_article(id=1))
        await publisher.close()

        assert result.success is True
        assert result.external_ref is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("body", "expected_ref"),
        [
            ([{"id": 7}], "7"),
            (["queued", {"link": "https://www.geteducated.com/mba"}], "https://www.geteducated.com/mba"),
            ([], None),
            ("ok", None),
            (42, None),
        ],
    )
    async def test_list_or_scalar_reply_is_still_success(self, body, expected_ref) -> None:
        publisher = WebhookPublisher(
            "https://hooks.example.com/publish",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body)),
        )
        result = await publisher.publish(make_article(id=1))
        await publisher.close()

        assert result.success is True
        assert result.external_ref == expected_ref

    @pytest.mark.asyncio
    async def test_item_list_reply_marks_article_published(
        self, store: ArticleStore
    ) -> None:
        from perdia.publishing.autopublish import AutoPublishGate, CycleOutcome
        from perdia.publishing.policy import AutoPublishPolicy
        from perdia.publishing.validation import PrePublishValidator

        now = datetime(2026, 6, 1, 9, 0)
        article = await store.add_article(
            make_article(
                content=build_html(1800),
                faqs=make_faqs(4),
                autopublish_deadline=now - timedelta(days=1),
            )
        )
        publisher = WebhookPublisher(
            "https://hooks.example.com/publish",
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[{"id": 99}])),
        )
        gate = AutoPublishGate(store, PrePublishValidator(), publisher, clock=lambda: now)

        report = await gate.run_cycle(AutoPublishPolicy(enabled=True))
        await publisher.close()

        assert [d.outcome for d in report.details] == [CycleOutcome.PUBLISHED]
        refreshed = await store.get_article(article.id)
        assert refreshed.status == ArticleStatus.PUBLISHED
        assert refreshed.published_url == "99"

    @pytest.mark.asyncio
    async def test_missing_url_fails_without_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        publisher = WebhookPublisher("", transport=httpx.MockTransport(handler))
        result = await publisher.publish(make_article(id=1))
        await publisher.close()

        assert result.success is False
        assert "No publish webhook" in result.error


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_settings(tmp_data_dir: Path) -> Settings:
    """Settings without provider keys so no command reaches the network."""
    return Settings(db_path=tmp_data_dir / "cli.db", log_level="WARNING")


@pytest.fixture
def runner(cli_settings: Settings):
    with patch("perdia.config.get_settings", return_value=cli_settings):
        yield CliRunner()


def _seed(settings: Settings, **overrides) -> int:
    store = ArticleStore(settings.db_path)
    return asyncio.run(store.add_article(make_article(**overrides))).id


class TestCLI:
    def test_strategies_lists_catalog(self, runner: CliRunner) -> None:
        from perdia.revision.strategies import STRATEGIES

        with patch("perdia.cli.console", Console(width=80, force_terminal=False)):
            result = runner.invoke(main, ["strategies"])

        assert result.exit_code == 0
        for strategy in STRATEGIES.values():
            assert strategy.id.value in result.output
        assert "Content Refresh" in result.output

    def test_add_then_analyze(self, runner: CliRunner, tmp_path: Path) -> None:
        html_path = tmp_path / "article.html"
        html_path.write_text(build_html(1200, headings=1, internal_links=1, external_links=0))
        faqs_path = tmp_path / "faqs.json"
        faqs_path.write_text(json.dumps(make_faqs(1)))

        added = runner.invoke(
            main,
            ["add", "--title", "Nursing Degrees", "--file", str(html_path),
             "--faqs", str(faqs_path), "--topic", "nursing"],
        )
        assert added.exit_code == 0, added.output
        assert "Added article 1" in added.output
        assert "1200 words" in added.output

        analyzed = runner.invoke(main, ["analyze", "1"])
        assert analyzed.exit_code == 0, analyzed.output
        assert "Quality Metrics" in analyzed.output
        assert "too short" in analyzed.output
        assert "add_sections" in analyzed.output

    def test_init_versions_and_history(self, runner: CliRunner, cli_settings: Settings) -> None:
        article_id = _seed(cli_settings)

        result = runner.invoke(main, ["init-versions"])
        assert result.exit_code == 0
        assert "Created:" in result.output

        history = runner.invoke(main, ["history", str(article_id)])
        assert history.exit_code == 0
        assert "original" in history.output

    def test_history_without_versions(self, runner: CliRunner, cli_settings: Settings) -> None:
        article_id = _seed(cli_settings)
        result = runner.invoke(main, ["history", str(article_id)])
        assert "No versions yet" in result.output

    def test_missing_article_exits_with_error(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["history", "99"])
        assert result.exit_code == 1
        assert "Article not found: 99" in result.output

    def test_restore_command(self, runner: CliRunner, cli_settings: Settings) -> None:
        store = ArticleStore(cli_settings.db_path)
        versions = VersionStore(store)
        article = asyncio.run(store.add_article(make_article()))
        original_id = asyncio.run(versions.ensure_original(article))

        result = runner.invoke(main, ["restore", str(article.id), str(original_id)])

        assert result.exit_code == 0
        assert "restored to version 1" in result.output

    def test_revise_requires_a_provider(self, runner: CliRunner, cli_settings: Settings) -> None:
        article_id = _seed(cli_settings)
        result = runner.invoke(main, ["revise", str(article_id)])
        assert result.exit_code == 1
        assert "no generation provider configured" in result.output

    def test_revise_with_wired_providers(self, runner: CliRunner, cli_settings: Settings) -> None:
        from perdia.revision.providers import GeneratedRevision

        article_id = _seed(cli_settings)
        store = ArticleStore(cli_settings.db_path)
        orchestrator = RevisionOrchestrator(
            store,
            VersionStore(store),
            [FakeGenerator("grok", GeneratedRevision(content=build_html(1800),
                                                     changes_summary="Refreshed tuition data"))],
        )

        with patch("perdia.cli._build_orchestrator", return_value=(orchestrator, [])):
            result = runner.invoke(main, ["revise", str(article_id), "--type", "seo_optimize"])

        assert result.exit_code == 0, result.output
        assert "Version 2" in result.output
        assert "Refreshed tuition data" in result.output

    def test_eligibility_explains_reasons(self, runner: CliRunner, cli_settings: Settings) -> None:
        article_id = _seed(
            cli_settings,
            quality_score=60,
            autopublish_deadline=datetime.now() - timedelta(days=1),
        )
        result = runner.invoke(main, ["eligibility", str(article_id)])
        assert result.exit_code == 0
        assert "Not eligible" in result.output
        assert "Quality score 60 below minimum 80" in result.output

    def test_autopublish_disabled_by_default(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["autopublish"])
        assert result.exit_code == 0
        assert "Auto-publish is disabled" in result.output

    def test_deadline_and_review(self, runner: CliRunner, cli_settings: Settings) -> None:
        article_id = _seed(cli_settings, status=ArticleStatus.READY_TO_PUBLISH)

        set_result = runner.invoke(main, ["deadline", str(article_id), "--days", "3"])
        assert set_result.exit_code == 0
        assert "Will auto-publish" in set_result.output

        reviewed = runner.invoke(main, ["review", str(article_id), "--by", "Sara"])
        assert reviewed.exit_code == 0
        assert "marked reviewed by Sara" in reviewed.output

        shown = runner.invoke(main, ["deadline", str(article_id), "--show"])
        assert "Will not auto-publish" in shown.output

        cancelled = runner.invoke(main, ["deadline", str(article_id), "--cancel"])
        assert "no auto-publish deadline" in cancelled.output
