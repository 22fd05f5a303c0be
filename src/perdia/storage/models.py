"""SQLModel database models."""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


class ArticleStatus(str, Enum):
    DRAFTING = "drafting"
    REFINEMENT = "refinement"
    QA_REVIEW = "qa_review"
    READY_TO_PUBLISH = "ready_to_publish"
    PUBLISHED = "published"
    REJECTED = "rejected"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class VersionType(str, Enum):
    ORIGINAL = "original"
    AI_REVISION = "ai_revision"


class ContentFields:
    """Parsed views of the JSON-backed snapshot columns."""

    @property
    def faqs(self) -> list[dict]:
        return json.loads(self.faqs_json or "[]")

    @property
    def heading_structure(self) -> dict[str, list[str]]:
        return json.loads(self.heading_structure_json or "{}")

    @property
    def internal_links(self) -> list[str]:
        return json.loads(self.internal_links_json or "[]")

    @property
    def external_links(self) -> list[str]:
        return json.loads(self.external_links_json or "[]")


# Columns copied between an article and its version snapshots
SNAPSHOT_FIELDS = (
    "title",
    "meta_description",
    "content",
    "word_count",
    "focus_keyword",
    "heading_structure_json",
    "faqs_json",
    "internal_links_json",
    "external_links_json",
)


class Article(ContentFields, SQLModel, table=True):
    """An article moving through the editorial pipeline."""

    id: int | None = Field(default=None, primary_key=True)
    title: str
    url: str = ""
    meta_description: str = ""
    content: str = ""  # HTML
    word_count: int = 0
    focus_keyword: str = ""
    heading_structure_json: str = "{}"
    faqs_json: str = "[]"
    internal_links_json: str = "[]"
    external_links_json: str = "[]"
    topics_json: str = "[]"
    contributor_name: str = ""
    quality_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    status: ArticleStatus = Field(default=ArticleStatus.DRAFTING, index=True)
    human_reviewed: bool = False
    reviewed_at: datetime | None = None
    reviewed_by: str = ""
    autopublish_deadline: datetime | None = Field(default=None, index=True)
    current_version_id: int | None = None
    version_count: int = 0
    published_url: str = ""
    published_at: datetime | None = None
    scraped_at: datetime | None = None
    last_revised_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def topics(self) -> list[str]:
        return json.loads(self.topics_json or "[]")


class ArticleVersion(ContentFields, SQLModel, table=True):
    """Immutable content snapshot of an article."""

    __table_args__ = (
        UniqueConstraint("article_id", "version_number"),
        Index(
            "ix_articleversion_one_current",
            "article_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    article_id: int = Field(foreign_key="article.id", index=True)
    version_number: int
    version_type: VersionType
    title: str
    meta_description: str = ""
    content: str = ""
    word_count: int = 0
    focus_keyword: str = ""
    heading_structure_json: str = "{}"
    faqs_json: str = "[]"
    internal_links_json: str = "[]"
    external_links_json: str = "[]"
    is_current: bool = False
    revision_type: str = ""
    revision_prompt: str = ""
    changes_summary: str = ""
    ai_model_used: str = ""
    revised_by: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class AuditEvent(SQLModel, table=True):
    """Audit trail of revision requests and auto-publish attempts."""

    id: int | None = Field(default=None, primary_key=True)
    article_id: int | None = Field(default=None, index=True)
    kind: str  # revision | autopublish | review | deadline
    status: str
    details_json: str = "{}"
    created_at: datetime = Field(default_factory=datetime.now)


class SystemSetting(SQLModel, table=True):
    """Editable key/value settings (auto-publish policy overrides)."""

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=datetime.now)


class CatalogEntry(SQLModel, table=True):
    """A published site page that revisions may link to."""

    id: int | None = Field(default=None, primary_key=True)
    url: str = Field(index=True, unique=True)
    title: str
    subject_area: str = ""
    topics_json: str = "[]"

    @property
    def topics(self) -> list[str]:
        return json.loads(self.topics_json or "[]")
