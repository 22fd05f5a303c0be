"""Quantitative quality metrics and issue detection for article HTML.

Everything here is pure: identical input always yields identical output.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_ANCHOR_WITH_HREF_RE = re.compile(r"""<a\s+(?:[^>]*?\s+)?href=["'][^"']*["']""", re.IGNORECASE)
# Scheme-qualified hrefs count as external even when they point at our own domain.
_ABSOLUTE_HREF_RE = re.compile(r"""href=["']https?://""", re.IGNORECASE)
_H2_RE = re.compile(r"<h2", re.IGNORECASE)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")


class Severity(str, Enum):
    MAJOR = "major"
    MINOR = "minor"


class IssueType(str, Enum):
    WORD_COUNT_LOW = "word_count_low"
    WORD_COUNT_HIGH = "word_count_high"
    MISSING_INTERNAL_LINKS = "missing_internal_links"
    MISSING_EXTERNAL_LINKS = "missing_external_links"
    MISSING_FAQS = "missing_faqs"
    WEAK_HEADINGS = "weak_headings"
    POOR_READABILITY = "poor_readability"


class ScoreBand(str, Enum):
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


@dataclass(frozen=True)
class QualityMetrics:
    word_count: int
    internal_link_count: int
    external_link_count: int
    faq_count: int
    heading_count: int
    avg_sentence_length: float


@dataclass(frozen=True)
class Issue:
    type: IssueType
    severity: Severity
    description: str


@dataclass(frozen=True)
class QualityPolicy:
    """Thresholds used by :func:`identify_issues`."""

    min_word_count: int = 1500
    max_word_count: int = 2500
    min_internal_links: int = 3
    min_external_links: int = 2
    min_faqs: int = 3
    min_headings: int = 3
    max_avg_sentence_length: float = 25.0

    @classmethod
    def from_settings(cls, settings) -> QualityPolicy:
        return cls(
            min_word_count=settings.min_word_count,
            max_word_count=settings.max_word_count,
            min_internal_links=settings.min_internal_links,
            min_external_links=settings.min_external_links,
            min_faqs=settings.min_faqs,
            min_headings=settings.min_headings,
            max_avg_sentence_length=settings.max_avg_sentence_length,
        )


def extract_text(content: str | None) -> str:
    """Replace tags with spaces and collapse whitespace."""
    if not content:
        return ""
    return _WHITESPACE_RE.sub(" ", _TAG_RE.sub(" ", content)).strip()


def count_words(content: str | None) -> int:
    """Number of non-empty whitespace-delimited tokens in the extracted text."""
    return len([token for token in extract_text(content).split(" ") if token])


def analyze(content: str | None, faqs: Sequence[object] | None = None) -> QualityMetrics:
    """Compute quality metrics for HTML content and its FAQ list."""
    content = content or ""
    word_count = count_words(content)

    sentences = [s for s in _SENTENCE_SPLIT_RE.split(extract_text(content)) if s.strip()]
    avg_sentence_length = word_count / len(sentences) if sentences else 0.0

    return QualityMetrics(
        word_count=word_count,
        internal_link_count=len(_ANCHOR_WITH_HREF_RE.findall(content)),
        external_link_count=len(_ABSOLUTE_HREF_RE.findall(content)),
        faq_count=len(faqs or []),
        heading_count=len(_H2_RE.findall(content)),
        avg_sentence_length=avg_sentence_length,
    )


def identify_issues(
    metrics: QualityMetrics, policy: QualityPolicy | None = None
) -> list[Issue]:
    """Derive the issue list for a set of metrics."""
    p = policy or QualityPolicy()
    issues: list[Issue] = []

    if metrics.word_count < p.min_word_count:
        issues.append(
            Issue(
                IssueType.WORD_COUNT_LOW,
                Severity.MAJOR,
                f"Article is too short ({metrics.word_count} words). "
                f"Aim for {p.min_word_count}-{p.max_word_count} words.",
            )
        )
    elif metrics.word_count > p.max_word_count:
        issues.append(
            Issue(
                IssueType.WORD_COUNT_HIGH,
                Severity.MINOR,
                f"Article is too long ({metrics.word_count} words). Consider condensing.",
            )
        )

    if metrics.internal_link_count < p.min_internal_links:
        issues.append(
            Issue(
                IssueType.MISSING_INTERNAL_LINKS,
                Severity.MAJOR,
                f"Missing internal links. Add "
                f"{p.min_internal_links - metrics.internal_link_count} more.",
            )
        )

    if metrics.external_link_count < p.min_external_links:
        issues.append(
            Issue(
                IssueType.MISSING_EXTERNAL_LINKS,
                Severity.MINOR,
                f"Missing external citations. Add "
                f"{p.min_external_links - metrics.external_link_count} more.",
            )
        )

    if metrics.faq_count < p.min_faqs:
        issues.append(
            Issue(
                IssueType.MISSING_FAQS,
                Severity.MINOR,
                f"Missing FAQs. Add {p.min_faqs - metrics.faq_count} more questions.",
            )
        )

    if metrics.heading_count < p.min_headings:
        issues.append(
            Issue(
                IssueType.WEAK_HEADINGS,
                Severity.MINOR,
                f"Weak headings. Add {p.min_headings - metrics.heading_count} more H2 headings.",
            )
        )

    if metrics.avg_sentence_length > p.max_avg_sentence_length:
        issues.append(
            Issue(
                IssueType.POOR_READABILITY,
                Severity.MINOR,
                "Readability could be improved. Shorten some sentences.",
            )
        )

    return issues


def score_band(score: int) -> ScoreBand:
    if score >= 85:
        return ScoreBand.GREEN
    if score >= 75:
        return ScoreBand.AMBER
    return ScoreBand.RED
