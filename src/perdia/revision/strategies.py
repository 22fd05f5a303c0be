"""Revision strategy catalog, article triage and request building."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from perdia.errors import UnknownStrategy
from perdia.llm.prompts import render
from perdia.quality.analyzer import count_words
from perdia.quality.structure import heading_structure
from perdia.storage.models import Article

CONTENT_EXCERPT_CHARS = 10_000
UNKNOWN_AGE_DAYS = 999


class StrategyId(str, Enum):
    FULL_REWRITE = "full_rewrite"
    REFRESH = "refresh"
    SEO_OPTIMIZE = "seo_optimize"
    ADD_SECTIONS = "add_sections"
    IMPROVE_QUALITY = "improve_quality"
    UPDATE_LINKS = "update_links"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class RevisionStrategy:
    id: StrategyId
    name: str
    description: str
    requires_humanization: bool
    preserve_links: bool
    preserve_faqs: bool


STRATEGIES: dict[StrategyId, RevisionStrategy] = {
    s.id: s
    for s in (
        RevisionStrategy(
            StrategyId.FULL_REWRITE,
            "Full Rewrite",
            "Complete rewrite while preserving key facts and SEO",
            requires_humanization=True,
            preserve_links=True,
            preserve_faqs=False,
        ),
        RevisionStrategy(
            StrategyId.REFRESH,
            "Content Refresh",
            "Update stats, add new info, improve outdated sections",
            requires_humanization=True,
            preserve_links=True,
            preserve_faqs=True,
        ),
        RevisionStrategy(
            StrategyId.SEO_OPTIMIZE,
            "SEO Optimization",
            "Improve meta tags, headings, keyword usage",
            requires_humanization=False,
            preserve_links=True,
            preserve_faqs=True,
        ),
        RevisionStrategy(
            StrategyId.ADD_SECTIONS,
            "Add Sections",
            "Add new sections like FAQs, comparisons, etc.",
            requires_humanization=True,
            preserve_links=True,
            preserve_faqs=True,
        ),
        RevisionStrategy(
            StrategyId.IMPROVE_QUALITY,
            "Quality Improvement",
            "Improve readability, fix issues, enhance structure",
            requires_humanization=True,
            preserve_links=True,
            preserve_faqs=True,
        ),
        RevisionStrategy(
            StrategyId.UPDATE_LINKS,
            "Update Links",
            "Refresh internal and external links",
            requires_humanization=False,
            preserve_links=False,
            preserve_faqs=True,
        ),
    )
}


def get_strategy(strategy_id: StrategyId | str) -> RevisionStrategy:
    try:
        return STRATEGIES[StrategyId(strategy_id)]
    except ValueError:
        raise UnknownStrategy(f"Unknown revision type: {strategy_id}") from None


@dataclass(frozen=True)
class RevisionIssue:
    type: str
    severity: Priority
    message: str


@dataclass
class ArticleAnalysis:
    """Triage of an article: what is wrong and which strategies fix it."""

    word_count: int
    content_age: int
    quality_issues: list[RevisionIssue] = field(default_factory=list)
    recommendations: list[StrategyId] = field(default_factory=list)
    priority: Priority = Priority.LOW


def content_age_days(article: Article, now: datetime | None = None) -> int:
    """Days since the most recent of publish, scrape and creation time."""
    stamps = [t for t in (article.published_at, article.scraped_at, article.created_at) if t]
    if not stamps:
        return UNKNOWN_AGE_DAYS
    return ((now or datetime.now()) - max(stamps)).days


def _outline(article: Article) -> dict[str, list[str]]:
    outline = article.heading_structure
    if not outline and article.content:
        outline = heading_structure(article.content)
    return outline


def analyze_article(article: Article, now: datetime | None = None) -> ArticleAnalysis:
    """Recommend revision strategies for an article."""
    word_count = article.word_count or count_words(article.content)
    analysis = ArticleAnalysis(word_count=word_count, content_age=content_age_days(article, now))
    issues = analysis.quality_issues
    recommended: list[StrategyId] = []

    if word_count < 1000:
        issues.append(
            RevisionIssue("word_count", Priority.HIGH, "Article is too short (under 1000 words)")
        )
        recommended.append(StrategyId.ADD_SECTIONS)
    elif word_count < 1500:
        issues.append(
            RevisionIssue(
                "word_count", Priority.MEDIUM, "Article could be longer (under 1500 words)"
            )
        )
        recommended.append(StrategyId.ADD_SECTIONS)

    stale = analysis.content_age > 365
    if stale:
        issues.append(
            RevisionIssue(
                "outdated",
                Priority.HIGH,
                "Content is over 1 year old and may have outdated information",
            )
        )
        recommended.append(StrategyId.REFRESH)
    elif analysis.content_age > 180:
        issues.append(RevisionIssue("aging", Priority.MEDIUM, "Content is over 6 months old"))
        recommended.append(StrategyId.REFRESH)

    if len(_outline(article).get("h2", [])) < 3:
        issues.append(
            RevisionIssue(
                "structure",
                Priority.MEDIUM,
                "Article has few H2 headings (needs better structure)",
            )
        )
        recommended.append(StrategyId.IMPROVE_QUALITY)

    if len(article.faqs) < 3:
        issues.append(RevisionIssue("faqs", Priority.LOW, "Article has few or no FAQs"))
        recommended.append(StrategyId.ADD_SECTIONS)

    if len(article.internal_links) < 3:
        issues.append(
            RevisionIssue("links", Priority.MEDIUM, "Article needs more internal links")
        )
        recommended.append(StrategyId.UPDATE_LINKS)

    high = sum(1 for i in issues if i.severity is Priority.HIGH)
    medium = sum(1 for i in issues if i.severity is Priority.MEDIUM)
    if stale or high >= 2 or (high >= 1 and medium >= 2):
        analysis.priority = Priority.HIGH
    elif high >= 1 or medium >= 2:
        analysis.priority = Priority.MEDIUM

    analysis.recommendations = list(dict.fromkeys(recommended))
    return analysis


@dataclass
class RequestOptions:
    custom_instructions: str = ""
    target_word_count: int | None = None
    analysis: ArticleAnalysis | None = None
    site_name: str = "GetEducated"
    approved_authors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderRequest:
    """Provider-agnostic revision instructions."""

    strategy: RevisionStrategy
    system: str
    prompt: str
    article_title: str
    original_content: str
    target_word_count: int | None = None
    issues: tuple[str, ...] = ()


def build_request(
    article: Article,
    strategy_id: StrategyId | str,
    options: RequestOptions | None = None,
) -> ProviderRequest:
    """Assemble the strategy-specific instruction payload for an article."""
    strategy = get_strategy(strategy_id)
    opts = options or RequestOptions()
    analysis = opts.analysis or analyze_article(article)
    outline = _outline(article)

    system = render(
        "revision_system.j2",
        site_name=opts.site_name,
        approved_authors=opts.approved_authors,
    )
    prompt = render(
        "revision.j2",
        article=article,
        site_name=opts.site_name,
        word_count=analysis.word_count,
        target_word_count=opts.target_word_count,
        excerpt=(article.content or "")[:CONTENT_EXCERPT_CHARS],
        h2=outline.get("h2", []),
        h3=outline.get("h3", []),
        faqs=article.faqs,
        issues=analysis.quality_issues,
        strategy=strategy.id.value,
        preserve_links=strategy.preserve_links,
        preserve_faqs=strategy.preserve_faqs,
        custom_instructions=opts.custom_instructions,
    )
    return ProviderRequest(
        strategy=strategy,
        system=system,
        prompt=prompt,
        article_title=article.title,
        original_content=article.content or "",
        target_word_count=opts.target_word_count,
        issues=tuple(i.message for i in analysis.quality_issues),
    )
