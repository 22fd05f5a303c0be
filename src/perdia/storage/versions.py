"""Append-only version history with a single current version per article."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from perdia.errors import NotFound
from perdia.quality.analyzer import count_words
from perdia.quality.structure import heading_structure, link_sets
from perdia.storage.models import SNAPSHOT_FIELDS, Article, ArticleVersion, VersionType
from perdia.storage.store import ArticleStore

logger = logging.getLogger(__name__)


@dataclass
class RevisedContent:
    """Content fields for a new version; ``None`` keeps the article's value."""

    content: str
    title: str | None = None
    meta_description: str | None = None
    focus_keyword: str | None = None
    faqs: list[dict] | None = None


@dataclass
class VersionMetadata:
    revision_type: str = ""
    revision_prompt: str = ""
    changes_summary: str = ""
    ai_model_used: str = ""
    revised_by: str = "ai_revision"


def snapshot(article: Article, version_type: VersionType, **extra: object) -> ArticleVersion:
    """Build an unsaved version mirroring the article's current content."""
    fields = {name: getattr(article, name) for name in SNAPSHOT_FIELDS}
    return ArticleVersion(article_id=article.id, version_type=version_type, **fields, **extra)


class VersionStore:
    """Version history operations on top of :class:`ArticleStore`."""

    def __init__(self, store: ArticleStore) -> None:
        self._store = store

    async def find_original(self, article_id: int) -> ArticleVersion | None:
        for version in await self._store.list_versions(article_id):
            if version.version_type == VersionType.ORIGINAL:
                return version
        return None

    async def pending_original(self, article: Article) -> ArticleVersion | None:
        """Unsaved original snapshot, or ``None`` when history already exists."""
        if await self._store.list_versions(article.id):
            return None
        return snapshot(article, VersionType.ORIGINAL, version_number=1, revised_by="system")

    async def ensure_original(self, article: Article) -> int:
        """Return the id of the article's original version, creating it if needed."""
        existing = await self.find_original(article.id)
        if existing is not None:
            return existing.id

        original = snapshot(
            article,
            VersionType.ORIGINAL,
            version_number=1,
            is_current=True,
            revised_by="system",
        )
        saved = await self._store.insert_version(original, {"version_count": 1})
        logger.info("Created original version %s for article %s", saved.id, article.id)
        return saved.id

    async def ensure_original_for_all(self) -> dict[str, int]:
        """Backfill original versions for every article lacking history."""
        created = skipped = 0
        for article in await self._store.list_articles():
            if await self._store.list_versions(article.id):
                skipped += 1
                continue
            await self.ensure_original(article)
            created += 1
        return {"created": created, "skipped": skipped}

    async def create_version(
        self,
        article: Article,
        revised: RevisedContent,
        metadata: VersionMetadata,
        *,
        baseline: ArticleVersion | None = None,
    ) -> ArticleVersion:
        """Persist revised content as the new current version of the article.

        An article without history gets its original snapshot as version 1
        in the same transaction, so the revision lands as version 2.
        """
        if baseline is None:
            baseline = await self.pending_original(article)
        html = revised.content
        internal, external = link_sets(html)
        faqs = revised.faqs if revised.faqs is not None else article.faqs

        fields = {
            "title": revised.title or article.title,
            "meta_description": revised.meta_description or article.meta_description,
            "content": html,
            "word_count": count_words(html),
            "focus_keyword": revised.focus_keyword or article.focus_keyword,
            "heading_structure_json": json.dumps(heading_structure(html)),
            "faqs_json": json.dumps(faqs),
            "internal_links_json": json.dumps(internal),
            "external_links_json": json.dumps(external),
        }
        version = ArticleVersion(
            article_id=article.id,
            version_number=0,  # assigned inside the transaction
            version_type=VersionType.AI_REVISION,
            revision_type=metadata.revision_type,
            revision_prompt=metadata.revision_prompt,
            changes_summary=metadata.changes_summary,
            ai_model_used=metadata.ai_model_used,
            revised_by=metadata.revised_by,
            **fields,
        )
        saved = await self._store.commit_version(
            version,
            {**fields, "last_revised_at": datetime.now()},
            baseline=baseline,
        )
        logger.info(
            "Article %s now at version %s (%s words)",
            article.id,
            saved.version_number,
            saved.word_count,
        )
        return saved

    async def restore(self, article: Article, version_id: int) -> ArticleVersion:
        """Make an earlier version current and copy its content onto the article."""
        version = await self._store.get_version(version_id)
        if version is None or version.article_id != article.id:
            raise NotFound("Version", version_id)

        patch = {name: getattr(version, name) for name in SNAPSHOT_FIELDS}
        restored = await self._store.update_version_currency(article.id, version_id, patch)
        logger.info("Restored article %s to version %s", article.id, restored.version_number)
        return restored

    async def history(self, article: Article) -> list[ArticleVersion]:
        """Versions of the article, newest first."""
        versions = await self._store.list_versions(article.id)
        return sorted(versions, key=lambda v: v.version_number, reverse=True)
