"""Pre-publish validation: checks that block or warn before publishing."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import urlparse

from perdia.quality.analyzer import analyze
from perdia.quality.structure import link_sets
from perdia.storage.models import Article, RiskLevel


@dataclass
class ValidationIssue:
    type: str
    message: str
    url: str | None = None


@dataclass
class ValidationReport:
    blocking_issues: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)

    @property
    def can_publish(self) -> bool:
        return not self.blocking_issues


class PrePublishValidator:
    """Author, link-compliance, risk and content checks.

    Blocking: missing or unapproved author, direct links to ``.edu``
    sites or blocked competitor domains, CRITICAL risk. Content shortfalls
    (word count, FAQs, H2 headings) are warnings only.
    """

    def __init__(
        self,
        approved_authors: Sequence[str] = (),
        blocked_domains: Sequence[str] = (),
        *,
        enforce_approved_authors: bool = True,
    ) -> None:
        self._approved_authors = list(approved_authors)
        self._blocked_domains = [d.lower() for d in blocked_domains]
        self._enforce_authors = enforce_approved_authors and bool(self._approved_authors)

    async def validate(self, article: Article) -> ValidationReport:
        report = ValidationReport()

        if self._enforce_authors:
            author = article.contributor_name
            if not author:
                report.blocking_issues.append(
                    ValidationIssue(
                        "no_author", "Article must have an assigned author before publishing"
                    )
                )
            elif author not in self._approved_authors:
                report.blocking_issues.append(
                    ValidationIssue(
                        "unauthorized_author", f'Author "{author}" is not an approved author'
                    )
                )

        _, external = link_sets(article.content)
        for url in external:
            host = (urlparse(url).hostname or "").lower()
            if host.endswith(".edu"):
                report.blocking_issues.append(
                    ValidationIssue(
                        "blocked_link", f"Direct link to school website not allowed: {host}", url
                    )
                )
            elif any(host == d or host.endswith("." + d) for d in self._blocked_domains):
                report.blocking_issues.append(
                    ValidationIssue("blocked_link", f"Link to competitor not allowed: {host}", url)
                )

        if article.risk_level == RiskLevel.CRITICAL:
            report.blocking_issues.append(
                ValidationIssue(
                    "critical_risk", "Article has CRITICAL risk level and cannot be published"
                )
            )

        metrics = analyze(article.content, article.faqs)
        if metrics.word_count < 1500:
            report.warnings.append(ValidationIssue("content_issue", "Word count below 1500"))
        if metrics.faq_count < 3:
            report.warnings.append(ValidationIssue("content_issue", "Fewer than 3 FAQ items"))
        if metrics.heading_count < 3:
            report.warnings.append(ValidationIssue("content_issue", "Fewer than 3 H2 headings"))

        return report
