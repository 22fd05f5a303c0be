"""Run a single AI revision of an article end to end.

Stages run strictly in order::

    fetching -> analyzing_original -> building_request -> generating
      -> humanizing (optional) -> linking (optional) -> persisting -> done

Any structural failure ends in ``failed``. Nothing is written to the
version history before ``persisting``, so an abandoned or failed attempt
leaves the article exactly as it was.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from perdia.errors import GenerationFailed, HumanizationFailed, PerdiaError
from perdia.quality.analyzer import QualityMetrics, analyze, count_words
from perdia.revision.fallback import FallbackOutcome, try_in_order
from perdia.revision.providers import (
    GeneratedRevision,
    GenerationProvider,
    HumanizationProvider,
    LinkEnricher,
)
from perdia.revision.strategies import (
    ProviderRequest,
    RequestOptions,
    StrategyId,
    analyze_article,
    build_request,
    get_strategy,
)
from perdia.storage.models import Article
from perdia.storage.store import ArticleStore
from perdia.storage.versions import RevisedContent, VersionMetadata, VersionStore

logger = logging.getLogger(__name__)


class RevisionStage(str, Enum):
    FETCHING = "fetching"
    ANALYZING_ORIGINAL = "analyzing_original"
    BUILDING_REQUEST = "building_request"
    GENERATING = "generating"
    HUMANIZING = "humanizing"
    LINKING = "linking"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ProgressEvent:
    stage: RevisionStage
    message: str
    percentage: int


ProgressSink = Callable[[ProgressEvent], "Awaitable[None] | None"]


@dataclass
class RevisionRequest:
    """A caller's request to revise one article."""

    article_id: int
    revision_type: StrategyId = StrategyId.REFRESH
    custom_instructions: str = ""
    target_word_count: int | None = None
    humanize: bool = True
    # When False, exhausting every humanizer keeps the unhumanized text.
    require_humanization: bool = True


@dataclass
class RevisionResult:
    article_id: int
    version_id: int
    version_number: int
    content: str
    word_count: int
    changes_summary: str
    provider: str
    humanized_by: str | None
    metrics: QualityMetrics


class RevisionOrchestrator:
    """Coordinates analysis, generation with fallback and version persistence."""

    def __init__(
        self,
        store: ArticleStore,
        versions: VersionStore,
        generators: Sequence[GenerationProvider],
        humanizers: Sequence[HumanizationProvider] = (),
        link_enricher: LinkEnricher | None = None,
        *,
        timeout: float | None = None,
        humanize_style: str = "College",
        site_name: str = "GetEducated",
        approved_authors: Sequence[str] = (),
    ) -> None:
        if not generators:
            raise ValueError("At least one generation provider is required")
        self._store = store
        self._versions = versions
        self._generators = list(generators)
        self._humanizers = list(humanizers)
        self._link_enricher = link_enricher
        self._timeout = timeout
        self._humanize_style = humanize_style
        self._site_name = site_name
        self._approved_authors = list(approved_authors)

    async def revise(
        self,
        article_id: int,
        request: RevisionRequest,
        on_progress: ProgressSink | None = None,
    ) -> RevisionResult:
        """Revise an article and persist the result as its new current version."""
        if request.article_id != article_id:
            raise ValueError(f"Request targets article {request.article_id}, not {article_id}")
        strategy = get_strategy(request.revision_type)
        stage = RevisionStage.FETCHING

        async def report(next_stage: RevisionStage, message: str, percentage: int) -> None:
            nonlocal stage
            stage = next_stage
            if on_progress is None:
                return
            outcome = on_progress(ProgressEvent(next_stage, message, percentage))
            if inspect.isawaitable(outcome):
                await outcome

        try:
            await report(RevisionStage.FETCHING, "Fetching article...", 5)
            article = await self._store.get_article(article_id)

            await report(RevisionStage.ANALYZING_ORIGINAL, "Analyzing current content...", 15)
            baseline = await self._versions.pending_original(article)
            analysis = analyze_article(article)

            await report(RevisionStage.BUILDING_REQUEST, "Building revision prompt...", 20)
            provider_request = build_request(
                article,
                strategy.id,
                RequestOptions(
                    custom_instructions=request.custom_instructions,
                    target_word_count=request.target_word_count,
                    analysis=analysis,
                    site_name=self._site_name,
                    approved_authors=self._approved_authors,
                ),
            )

            await report(RevisionStage.GENERATING, f"Generating revision ({strategy.name})...", 30)
            generated = await self._generate(article_id, provider_request)
            revision: GeneratedRevision = generated.value
            content = revision.content

            humanized_by = None
            if strategy.requires_humanization and request.humanize:
                await report(RevisionStage.HUMANIZING, "Humanizing content...", 60)
                content, humanized_by = await self._humanize(article_id, content, request)

            if not strategy.preserve_links and self._link_enricher is not None:
                await report(RevisionStage.LINKING, "Updating internal links...", 75)
                content = await self._enrich(article, content)

            await report(RevisionStage.PERSISTING, "Saving new version...", 85)
            version = await self._versions.create_version(
                article,
                RevisedContent(
                    content=content,
                    title=revision.title,
                    meta_description=revision.meta_description,
                    focus_keyword=revision.focus_keyword,
                    faqs=_merge_faqs(article.faqs, revision.faqs)
                    if strategy.preserve_faqs
                    else revision.faqs,
                ),
                VersionMetadata(
                    revision_type=strategy.id.value,
                    revision_prompt=request.custom_instructions,
                    changes_summary=revision.changes_summary,
                    ai_model_used="+".join(p for p in (generated.provider, humanized_by) if p),
                ),
                baseline=baseline,
            )
        except PerdiaError as exc:
            logger.error("Revision of article %s failed at %s: %s", article_id, stage.value, exc)
            await self._audit(article_id, request, "failed", stage=stage.value, error=str(exc))
            await report(RevisionStage.FAILED, str(exc), 100)
            raise

        await self._audit(
            article_id,
            request,
            "succeeded",
            version_id=version.id,
            provider=generated.provider,
            humanized_by=humanized_by,
        )
        await report(RevisionStage.DONE, "Revision complete!", 100)
        return RevisionResult(
            article_id=article_id,
            version_id=version.id,
            version_number=version.version_number,
            content=content,
            word_count=count_words(content),
            changes_summary=revision.changes_summary,
            provider=generated.provider,
            humanized_by=humanized_by,
            metrics=analyze(content, version.faqs),
        )

    async def _generate(
        self, article_id: int, provider_request: ProviderRequest
    ) -> FallbackOutcome[GeneratedRevision]:
        outcome = await try_in_order(
            self._generators,
            lambda provider: provider.generate(provider_request),
            timeout=self._timeout,
            label="Generation provider",
        )
        if not outcome.succeeded:
            raise GenerationFailed(
                f"All generation providers failed for article {article_id}: "
                + "; ".join(str(e) for e in outcome.errors),
                article_id=article_id,
                stage=RevisionStage.GENERATING.value,
                errors=outcome.errors,
            )
        return outcome

    async def _humanize(
        self, article_id: int, content: str, request: RevisionRequest
    ) -> tuple[str, str | None]:
        outcome = await try_in_order(
            self._humanizers,
            lambda provider: provider.humanize(content, self._humanize_style),
            timeout=self._timeout,
            label="Humanization provider",
        )
        if outcome.succeeded:
            return outcome.value, outcome.provider

        if request.require_humanization:
            raise HumanizationFailed(
                f"Humanization failed for article {article_id}",
                article_id=article_id,
                stage=RevisionStage.HUMANIZING.value,
                errors=outcome.errors,
            )
        logger.warning("Humanization unavailable for article %s; keeping generated text", article_id)
        return content, None

    async def _enrich(self, article: Article, content: str) -> str:
        hints = article.topics or [h for h in (article.focus_keyword, article.title) if h]
        outcome = await try_in_order(
            [self._link_enricher],
            lambda enricher: enricher.suggest_links(
                content, hints, exclude_urls=[article.url] if article.url else []
            ),
            timeout=self._timeout,
            label="Link enricher",
        )
        if outcome.succeeded:
            return outcome.value
        logger.warning("Link enrichment failed for article %s; keeping content", article.id)
        return content

    async def _audit(self, article_id: int, request: RevisionRequest, status: str, **details) -> None:
        payload = {
            "revision_type": StrategyId(request.revision_type).value,
            "custom_instructions": request.custom_instructions,
            "target_word_count": request.target_word_count,
            "humanize": request.humanize,
            **details,
        }
        try:
            await self._store.record_event(article_id, "revision", status, payload)
        except PerdiaError as exc:
            logger.error("Could not record revision audit for article %s: %s", article_id, exc)


def _merge_faqs(existing: list[dict], generated: list[dict] | None) -> list[dict] | None:
    """Keep every existing FAQ and append generated ones with new questions."""
    if not generated:
        return None
    seen = {faq.get("question", "").strip().lower() for faq in existing}
    merged = list(existing)
    for faq in generated:
        key = faq["question"].strip().lower()
        if key not in seen:
            seen.add(key)
            merged.append(faq)
    return merged
