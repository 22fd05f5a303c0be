"""CLI entry point for the perdia revision and publishing engine."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from perdia.errors import PerdiaError

console = Console()

_BAND_COLORS = {"green": "green", "amber": "yellow", "red": "red"}


@click.group()
@click.version_option(version="0.1.0")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def main(verbose: bool) -> None:
    """perdia: article revision, versioning and auto-publish engine."""
    from perdia.config import get_settings

    level = "DEBUG" if verbose else get_settings().log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


# ---------------------------------------------------------------------------
# add: register an article
# ---------------------------------------------------------------------------


@main.command()
@click.option("--title", "-t", required=True, help="Article title")
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), required=True,
              help="HTML file with the article body")
@click.option("--keyword", "-k", default="", help="Focus keyword")
@click.option("--author", "-a", default="", help="Contributor name")
@click.option("--url", default="", help="Published URL of the article")
@click.option("--topic", multiple=True, help="Topic tag (repeatable)")
@click.option("--faqs", "faqs_path", type=click.Path(exists=True),
              help="JSON file with a list of {question, answer}")
@click.option(
    "--status",
    type=click.Choice(["drafting", "refinement", "qa_review", "ready_to_publish"]),
    default="drafting",
    help="Initial pipeline status",
)
@click.option("--score", default=0, type=click.IntRange(0, 100), help="Quality score")
@click.option(
    "--risk",
    type=click.Choice(["LOW", "MEDIUM", "HIGH", "CRITICAL"]),
    default="LOW",
    help="Risk level",
)
def add(
    title: str,
    file_path: str,
    keyword: str,
    author: str,
    url: str,
    topic: tuple[str, ...],
    faqs_path: str | None,
    status: str,
    score: int,
    risk: str,
) -> None:
    """Add an article from an HTML file."""
    from perdia.quality.analyzer import count_words
    from perdia.quality.structure import heading_structure, link_sets
    from perdia.storage.models import Article, ArticleStatus, RiskLevel

    html = Path(file_path).read_text()
    faqs = json.loads(Path(faqs_path).read_text()) if faqs_path else []
    internal, external = link_sets(html)

    article = Article(
        title=title,
        url=url,
        content=html,
        word_count=count_words(html),
        focus_keyword=keyword,
        heading_structure_json=json.dumps(heading_structure(html)),
        faqs_json=json.dumps(faqs),
        internal_links_json=json.dumps(internal),
        external_links_json=json.dumps(external),
        topics_json=json.dumps(list(topic)),
        contributor_name=author,
        quality_score=score,
        risk_level=RiskLevel(risk),
        status=ArticleStatus(status),
    )
    store = _store()
    saved = _run(store.add_article(article))
    console.print(f"[green]Added article {saved.id}:[/green] {saved.title} "
                  f"[dim]({saved.word_count} words)[/dim]")


# ---------------------------------------------------------------------------
# analyze: quality metrics and strategy recommendations
# ---------------------------------------------------------------------------


@main.command()
@click.argument("article_id", type=int)
def analyze(article_id: int) -> None:
    """Show quality metrics, issues and recommended revision strategies."""
    from perdia.config import get_settings
    from perdia.quality.analyzer import QualityPolicy, identify_issues, score_band
    from perdia.quality.analyzer import analyze as analyze_content
    from perdia.revision.strategies import analyze_article, get_strategy

    settings = get_settings()
    article = _run(_store().get_article(article_id))
    metrics = analyze_content(article.content, article.faqs)
    issues = identify_issues(metrics, QualityPolicy.from_settings(settings))
    triage = analyze_article(article)

    band = score_band(article.quality_score).value
    console.print(
        Panel(
            f"[bold]{article.title}",
            subtitle=f"score [{_BAND_COLORS[band]}]{article.quality_score}[/] | "
            f"risk {article.risk_level.value} | {article.status.value}",
        )
    )

    table = Table(title="Quality Metrics")
    table.add_column("Metric", width=24)
    table.add_column("Value", justify="right")
    table.add_row("Words", str(metrics.word_count))
    table.add_row("Internal links", str(metrics.internal_link_count))
    table.add_row("External links", str(metrics.external_link_count))
    table.add_row("FAQs", str(metrics.faq_count))
    table.add_row("H2 headings", str(metrics.heading_count))
    table.add_row("Avg sentence length", f"{metrics.avg_sentence_length:.1f}")
    table.add_row("Content age (days)", str(triage.content_age))
    console.print(table)

    if issues:
        console.print("\n[bold]Issues:[/bold]")
        for issue in issues:
            color = "red" if issue.severity.value == "major" else "yellow"
            console.print(f"  [{color}]{issue.severity.value}[/] {issue.description}")

    console.print(f"\n[bold]Revision priority:[/bold] {triage.priority.value}")
    for strategy_id in triage.recommendations:
        strategy = get_strategy(strategy_id)
        console.print(f"  - [bold]{strategy.id.value}[/bold]: {strategy.description}")


# ---------------------------------------------------------------------------
# revise: run a revision through the provider chain
# ---------------------------------------------------------------------------


@main.command()
@click.argument("article_id", type=int)
@click.option(
    "--type",
    "-T",
    "revision_type",
    type=click.Choice(
        ["full_rewrite", "refresh", "seo_optimize", "add_sections", "improve_quality",
         "update_links"]
    ),
    default="refresh",
    help="Revision strategy",
)
@click.option("--instructions", "-i", default="", help="Extra instructions for the writer")
@click.option("--words", "-w", type=int, default=None, help="Target word count")
@click.option("--no-humanize", is_flag=True, help="Skip humanization")
@click.option("--allow-unhumanized", is_flag=True,
              help="Keep the generated text if every humanizer fails")
def revise(
    article_id: int,
    revision_type: str,
    instructions: str,
    words: int | None,
    no_humanize: bool,
    allow_unhumanized: bool,
) -> None:
    """Revise an article and save the result as its new current version."""
    from perdia.config import get_settings
    from perdia.revision.orchestrator import RevisionRequest
    from perdia.revision.strategies import StrategyId

    settings = get_settings()
    request = RevisionRequest(
        article_id=article_id,
        revision_type=StrategyId(revision_type),
        custom_instructions=instructions,
        target_word_count=words,
        humanize=not no_humanize,
        require_humanization=not allow_unhumanized,
    )

    orchestrator, clients = _build_orchestrator(settings)

    async def _revise():
        try:
            with console.status("[bold green]Starting revision...") as status:
                return await orchestrator.revise(
                    article_id,
                    request,
                    lambda event: status.update(
                        f"[bold green]{event.message}[/] [dim]{event.percentage}%[/dim]"
                    ),
                )
        finally:
            for client in clients:
                await client.close()

    result = _run(_revise())
    console.print(
        Panel(
            result.changes_summary,
            title=f"Version {result.version_number}",
            subtitle=f"{result.word_count} words | {result.provider}"
            + (f" + {result.humanized_by}" if result.humanized_by else ""),
        )
    )


# ---------------------------------------------------------------------------
# history / restore / init-versions: version management
# ---------------------------------------------------------------------------


@main.command()
@click.argument("article_id", type=int)
def history(article_id: int) -> None:
    """List an article's versions, newest first."""
    from perdia.storage.versions import VersionStore

    store = _store()

    async def _history():
        article = await store.get_article(article_id)
        return article, await VersionStore(store).history(article)

    article, versions = _run(_history())
    if not versions:
        console.print("[yellow]No versions yet. Run 'perdia init-versions' first.[/yellow]")
        return

    table = Table(title=f"Versions of {article.title[:50]}")
    table.add_column("ID", width=4, justify="right")
    table.add_column("#", width=3, justify="right")
    table.add_column("Type", width=12)
    table.add_column("Words", width=6, justify="right")
    table.add_column("Summary", width=40)
    table.add_column("Created", width=16)
    for v in versions:
        marker = " [green]*[/green]" if v.is_current else ""
        table.add_row(
            str(v.id),
            f"{v.version_number}{marker}",
            v.revision_type or v.version_type.value,
            str(v.word_count),
            (v.changes_summary or "")[:40],
            v.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@main.command()
@click.argument("article_id", type=int)
@click.argument("version_id", type=int)
def restore(article_id: int, version_id: int) -> None:
    """Make an earlier version the current one."""
    from perdia.storage.versions import VersionStore

    store = _store()

    async def _restore():
        article = await store.get_article(article_id)
        return await VersionStore(store).restore(article, version_id)

    version = _run(_restore())
    console.print(
        f"[green]Article {article_id} restored to version {version.version_number}.[/green]"
    )


@main.command("init-versions")
def init_versions() -> None:
    """Create original versions for every article that has none."""
    from perdia.storage.versions import VersionStore

    with console.status("[green]Backfilling original versions..."):
        counts = _run(VersionStore(_store()).ensure_original_for_all())
    console.print(
        f"  [green]Created:[/green] {counts['created']}  [dim]Skipped: {counts['skipped']}[/dim]"
    )


# ---------------------------------------------------------------------------
# eligibility / autopublish / deadline / review: publish gate
# ---------------------------------------------------------------------------


@main.command()
@click.argument("article_id", type=int)
def eligibility(article_id: int) -> None:
    """Explain whether an article may auto-publish."""
    from perdia.config import get_settings

    settings = get_settings()
    store = _store()

    async def _check():
        gate, loader, publisher = _build_gate(settings, store)
        try:
            cache = await loader.load()
            article = await store.get_article(article_id)
            return await gate.is_eligible(article, cache.policy)
        finally:
            await publisher.close()

    result = _run(_check())
    if result.eligible:
        console.print("[bold green]Eligible for auto-publish.[/bold green]")
        return
    console.print("[bold red]Not eligible:[/bold red]")
    for reason in result.reasons:
        console.print(f"  - {reason}")


@main.command()
def autopublish() -> None:
    """Run one auto-publish cycle over overdue articles."""
    from perdia.config import get_settings

    settings = get_settings()
    store = _store()

    async def _cycle():
        gate, loader, publisher = _build_gate(settings, store)
        try:
            cache = await loader.load()
            return await gate.run_cycle(cache.policy)
        finally:
            await publisher.close()

    with console.status("[bold green]Running auto-publish cycle..."):
        report = _run(_cycle())

    if report.note:
        console.print(f"[yellow]{report.note}[/yellow]")
        return

    if report.details:
        table = Table(title="Auto-publish Cycle")
        table.add_column("ID", width=4, justify="right")
        table.add_column("Title", width=40)
        table.add_column("Outcome", width=10)
        table.add_column("Notes", width=50)
        colors = {"published": "green", "skipped": "yellow", "failed": "red"}
        for d in report.details:
            table.add_row(
                str(d.article_id),
                d.title[:40],
                f"[{colors[d.outcome.value]}]{d.outcome.value}[/]",
                d.error or "; ".join(d.reasons),
            )
        console.print(table)

    console.rule("[bold] Cycle complete [/bold]")
    console.print(f"  Checked: {report.checked}")
    console.print(f"  [green]Published:[/green] {report.published}")
    console.print(f"  [yellow]Skipped:[/yellow] {report.skipped}")
    console.print(f"  [red]Failed:[/red] {report.failed}")
    deferred = report.checked - len(report.details)
    if deferred:
        console.print(f"  [dim]Deferred to next run:[/dim] {deferred}")
    console.print(f"  [dim]{report.duration:.2f}s[/dim]\n")


@main.command()
@click.argument("article_id", type=int)
@click.option("--days", "-d", type=int, default=None,
              help="Days until auto-publish (defaults to the policy)")
@click.option("--cancel", is_flag=True, help="Remove the deadline")
@click.option("--show", is_flag=True, help="Only show the current deadline")
def deadline(article_id: int, days: int | None, cancel: bool, show: bool) -> None:
    """Set, cancel or show an article's auto-publish deadline."""
    from perdia.config import get_settings

    settings = get_settings()
    store = _store()

    async def _deadline():
        gate, loader, publisher = _build_gate(settings, store)
        try:
            if cancel:
                await gate.cancel(article_id)
            elif not show:
                policy = (await loader.load()).policy
                await gate.set_deadline(
                    article_id, days if days is not None else policy.days_until_deadline
                )
            return await gate.status(article_id)
        finally:
            await publisher.close()

    status = _run(_deadline())
    if status.deadline is None:
        console.print(f"Article {article_id}: [dim]no auto-publish deadline[/dim]")
        return
    flag = " [red](overdue)[/red]" if status.overdue else ""
    console.print(f"Article {article_id}: deadline {status.deadline:%Y-%m-%d %H:%M}{flag}")
    console.print(
        "  Will auto-publish" if status.will_auto_publish else "  [dim]Will not auto-publish[/dim]"
    )


@main.command()
@click.argument("article_id", type=int)
@click.option("--by", "reviewer", required=True, help="Reviewer name")
def review(article_id: int, reviewer: str) -> None:
    """Record human review, which stops auto-publishing."""
    from perdia.config import get_settings

    settings = get_settings()
    store = _store()

    async def _review():
        gate, _, publisher = _build_gate(settings, store)
        try:
            return await gate.mark_reviewed(article_id, reviewer)
        finally:
            await publisher.close()

    article = _run(_review())
    console.print(f"[green]Article {article.id} marked reviewed by {reviewer}.[/green]")


@main.command()
def strategies() -> None:
    """List the available revision strategies."""
    from perdia.revision.strategies import STRATEGIES

    table = Table(title="Revision Strategies")
    table.add_column("ID", no_wrap=True)
    table.add_column("Strategy", ratio=1)
    table.add_column("Humanize", justify="center")
    table.add_column("Links", justify="center")
    table.add_column("FAQs", justify="center")

    def _mark(flag: bool) -> str:
        return "[green]yes[/green]" if flag else "[dim]no[/dim]"

    for s in STRATEGIES.values():
        table.add_row(
            s.id.value,
            f"[bold]{s.name}[/bold]\n[dim]{s.description}[/dim]",
            _mark(s.requires_humanization),
            "keep" if s.preserve_links else "[yellow]update[/yellow]",
            "keep" if s.preserve_faqs else "[yellow]replace[/yellow]",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run a coroutine, turning domain errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except PerdiaError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise SystemExit(1) from e


def _store():
    from perdia.config import get_settings
    from perdia.storage.store import ArticleStore

    return ArticleStore(get_settings().db_path)


def _build_orchestrator(settings):
    """Wire providers for every configured API key, primary first."""
    from perdia.llm.client import ClaudeClient
    from perdia.llm.grok import GrokClient
    from perdia.llm.stealthgpt import StealthGPTClient
    from perdia.revision.orchestrator import RevisionOrchestrator
    from perdia.revision.providers import (
        CatalogLinkEnricher,
        ClaudeHumanizer,
        ClaudeReviser,
        GrokGenerator,
        StealthHumanizer,
    )
    from perdia.storage.store import ArticleStore
    from perdia.storage.versions import VersionStore

    store = ArticleStore(settings.db_path)
    clients: list = []
    generators: list = []
    humanizers: list = []
    enricher = None

    if settings.xai_api_key:
        grok = GrokClient(settings)
        clients.append(grok)
        generators.append(GrokGenerator(grok, temperature=settings.temperature))
    if settings.stealthgpt_api_key:
        stealth = StealthGPTClient(settings)
        clients.append(stealth)
        humanizers.append(
            StealthHumanizer(
                stealth,
                mode=settings.stealthgpt_mode,
                max_iterations=settings.stealthgpt_max_iterations,
                threshold=settings.stealthgpt_detection_threshold,
            )
        )
    if settings.anthropic_api_key:
        claude = ClaudeClient(settings)
        clients.append(claude)
        generators.append(ClaudeReviser(claude))
        humanizers.append(ClaudeHumanizer(claude, temperature=settings.humanize_temperature))
        enricher = CatalogLinkEnricher(store, claude, site_name=settings.site_name)

    if not generators:
        console.print(
            "[bold red]Error:[/bold red] no generation provider configured.\n"
            "Set XAI_API_KEY or ANTHROPIC_API_KEY in .env."
        )
        raise SystemExit(1)

    orchestrator = RevisionOrchestrator(
        store,
        VersionStore(store),
        generators,
        humanizers,
        enricher,
        timeout=settings.provider_timeout_seconds,
        humanize_style=settings.stealthgpt_tone,
        site_name=settings.site_name,
        approved_authors=settings.approved_authors,
    )
    return orchestrator, clients


def _build_gate(settings, store):
    from perdia.publishing.autopublish import AutoPublishGate
    from perdia.publishing.policy import PolicyLoader
    from perdia.publishing.validation import PrePublishValidator
    from perdia.publishing.webhook import WebhookPublisher

    publisher = WebhookPublisher(settings.publish_webhook_url)
    validator = PrePublishValidator(settings.approved_authors, settings.blocked_domains)
    gate = AutoPublishGate(store, validator, publisher)
    return gate, PolicyLoader(store, settings), publisher
