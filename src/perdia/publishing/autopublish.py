"""Auto-publish eligibility gate and the periodic publish cycle.

Articles that reach ``ready_to_publish`` get a review deadline. If no
human reviews them before it passes, the cycle publishes them without
sign-off, provided they clear the quality, risk and validation rules.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from perdia.errors import PerdiaError, PublishFailed
from perdia.publishing.policy import AutoPublishPolicy
from perdia.publishing.validation import PrePublishValidator, ValidationReport
from perdia.publishing.webhook import PublishResult
from perdia.storage.models import Article, ArticleStatus, RiskLevel
from perdia.storage.store import ArticleStore

logger = logging.getLogger(__name__)


class CycleOutcome(str, Enum):
    PUBLISHED = "published"
    SKIPPED = "skipped"
    FAILED = "failed"


class Publisher(Protocol):
    async def publish(self, article: Article) -> PublishResult: ...


@dataclass
class EligibilityResult:
    eligible: bool
    reasons: list[str] = field(default_factory=list)


@dataclass
class CycleDetail:
    article_id: int
    title: str
    outcome: CycleOutcome
    reasons: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class CycleReport:
    checked: int = 0
    published: int = 0
    failed: int = 0
    skipped: int = 0
    details: list[CycleDetail] = field(default_factory=list)
    duration: float = 0.0
    note: str | None = None


@dataclass
class DeadlineStatus:
    article_id: int
    deadline: datetime | None
    overdue: bool
    human_reviewed: bool
    will_auto_publish: bool


class AutoPublishGate:
    """Decides whether articles may publish without sign-off and publishes them."""

    def __init__(
        self,
        store: ArticleStore,
        validator: PrePublishValidator,
        publisher: Publisher,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._validator = validator
        self._publisher = publisher
        self._clock = clock
        self._cycle_lock = asyncio.Lock()

    async def is_eligible(self, article: Article, policy: AutoPublishPolicy) -> EligibilityResult:
        """Check every rule and collect a reason for each one that fails."""
        now = self._clock()
        reasons: list[str] = []

        if article.status != ArticleStatus.READY_TO_PUBLISH:
            reasons.append(f"Status is {ArticleStatus(article.status).value}, not ready_to_publish")
        if article.human_reviewed:
            reasons.append("Article has already been human-reviewed")
        if article.autopublish_deadline is None:
            reasons.append("No auto-publish deadline set")
        elif article.autopublish_deadline > now:
            reasons.append(
                f"Auto-publish deadline not reached ({article.autopublish_deadline:%Y-%m-%d %H:%M})"
            )

        risk = RiskLevel(article.risk_level)
        if risk.rank > policy.max_risk_level.rank:
            reasons.append(
                f"Risk level {risk.value} exceeds maximum "
                f"{policy.max_risk_level.value}"
            )

        score = article.quality_score or 0
        if score < policy.min_quality_score:
            reasons.append(f"Quality score {score} below minimum {policy.min_quality_score}")

        report: ValidationReport = await self._validator.validate(article)
        reasons.extend(f"Validation: {issue.message}" for issue in report.blocking_issues)

        return EligibilityResult(eligible=not reasons, reasons=reasons)

    async def run_cycle(self, policy: AutoPublishPolicy) -> CycleReport:
        """Publish every eligible overdue article, up to the per-run cap.

        Overlapping calls on the same gate run one after another.
        """
        async with self._cycle_lock:
            started = time.monotonic()
            report = await self._run_cycle(policy)
            report.duration = time.monotonic() - started
        logger.info(
            "Auto-publish cycle: %d checked, %d published, %d failed, %d skipped",
            report.checked,
            report.published,
            report.failed,
            report.skipped,
        )
        return report

    async def _run_cycle(self, policy: AutoPublishPolicy) -> CycleReport:
        report = CycleReport()
        if not policy.enabled:
            report.note = "Auto-publish is disabled"
            return report

        now = self._clock()
        candidates = await self._store.list_candidates(now=now)
        report.checked = len(candidates)
        for candidate in candidates[: policy.max_articles_per_run]:
            detail = await self._process(candidate, policy, now)
            report.details.append(detail)
            if detail.outcome is CycleOutcome.PUBLISHED:
                report.published += 1
            elif detail.outcome is CycleOutcome.SKIPPED:
                report.skipped += 1
            else:
                report.failed += 1
        return report

    async def _process(self, candidate: Article, policy: AutoPublishPolicy, now: datetime) -> CycleDetail:
        try:
            article = await self._store.get_article(candidate.id)
            eligibility = await self.is_eligible(article, policy)
            if not eligibility.eligible:
                logger.info("Skipping article %s: %s", article.id, "; ".join(eligibility.reasons))
                await self._audit(article.id, "skipped", reasons=eligibility.reasons)
                return CycleDetail(article.id, article.title, CycleOutcome.SKIPPED, eligibility.reasons)

            result = await self._publisher.publish(article)
            if not result.success:
                raise PublishFailed(result.error or "Publisher reported failure")

            await self._store.save_article(
                article.id,
                {
                    "status": ArticleStatus.PUBLISHED,
                    "published_at": now,
                    "published_url": result.external_ref or "",
                },
            )
        except Exception as exc:  # noqa: BLE001 - one article must not abort the batch
            logger.error("Auto-publish failed for article %s: %s", candidate.id, exc)
            await self._audit(candidate.id, "failed", error=str(exc))
            return CycleDetail(candidate.id, candidate.title, CycleOutcome.FAILED, error=str(exc))

        logger.info("Auto-published article %s (%s)", article.id, article.title)
        await self._audit(article.id, "published", external_ref=result.external_ref)
        return CycleDetail(article.id, article.title, CycleOutcome.PUBLISHED)

    # -- deadline management ----------------------------------------------

    async def set_deadline(self, article_id: int, days: int) -> Article:
        deadline = self._clock() + timedelta(days=days)
        article = await self._store.save_article(article_id, {"autopublish_deadline": deadline})
        await self._store.record_event(
            article_id, "deadline", "set", {"deadline": deadline, "days": days}
        )
        return article

    async def cancel(self, article_id: int) -> Article:
        article = await self._store.save_article(article_id, {"autopublish_deadline": None})
        await self._store.record_event(article_id, "deadline", "cancelled")
        return article

    async def mark_reviewed(self, article_id: int, reviewer: str) -> Article:
        """Record human sign-off; reviewed articles never auto-publish."""
        article = await self._store.save_article(
            article_id,
            {"human_reviewed": True, "reviewed_at": self._clock(), "reviewed_by": reviewer},
        )
        await self._store.record_event(article_id, "review", "reviewed", {"reviewer": reviewer})
        return article

    async def status(self, article_id: int) -> DeadlineStatus:
        article = await self._store.get_article(article_id)
        deadline = article.autopublish_deadline
        return DeadlineStatus(
            article_id=article_id,
            deadline=deadline,
            overdue=deadline is not None and deadline <= self._clock(),
            human_reviewed=article.human_reviewed,
            will_auto_publish=(
                deadline is not None
                and not article.human_reviewed
                and article.status == ArticleStatus.READY_TO_PUBLISH
            ),
        )

    async def _audit(self, article_id: int, status: str, **details) -> None:
        try:
            await self._store.record_event(article_id, "autopublish", status, details)
        except PerdiaError as exc:
            logger.error("Could not record auto-publish audit for article %s: %s", article_id, exc)
