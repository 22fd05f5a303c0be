"""Persistent store for articles, versions, audit events and settings.

Methods are coroutines so that callers treat every store access as a
suspension point; the SQLite work itself runs on the calling thread.
Multi-row version updates happen inside one session and commit once, so
a failure rolls the whole unit back.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from perdia.errors import NotFound, PersistenceFailed
from perdia.storage.database import get_session
from perdia.storage.models import (
    Article,
    ArticleStatus,
    ArticleVersion,
    AuditEvent,
    CatalogEntry,
    SystemSetting,
    VersionType,
)

logger = logging.getLogger(__name__)


class ArticleStore:
    """SQLite-backed store used by the version store, orchestrator and gate."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @contextmanager
    def _session(self, article_id: int | None = None) -> Iterator[Session]:
        session = get_session(self._db_path)
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Store write failed for article %s: %s", article_id, exc)
            raise PersistenceFailed(str(exc), article_id=article_id) from exc
        finally:
            session.close()

    # -- articles ---------------------------------------------------------

    async def add_article(self, article: Article) -> Article:
        with self._session() as session:
            session.add(article)
            session.commit()
            session.refresh(article)
            return article

    async def get_article(self, article_id: int) -> Article:
        with self._session(article_id) as session:
            article = session.get(Article, article_id)
            if article is None:
                raise NotFound("Article", article_id)
            return article

    async def save_article(self, article_id: int, patch: dict[str, Any]) -> Article:
        """Apply a partial update to an article."""
        with self._session(article_id) as session:
            article = session.get(Article, article_id)
            if article is None:
                raise NotFound("Article", article_id)
            for key, value in patch.items():
                setattr(article, key, value)
            article.updated_at = datetime.now()
            session.add(article)
            session.commit()
            return article

    async def list_articles(self) -> list[Article]:
        with self._session() as session:
            return list(session.exec(select(Article).order_by(Article.id)).all())

    async def list_candidates(self, *, now: datetime) -> list[Article]:
        """Articles awaiting auto-publish whose review deadline has passed."""
        statement = (
            select(Article)
            .where(Article.status == ArticleStatus.READY_TO_PUBLISH)
            .where(col(Article.human_reviewed).is_(False))
            .where(col(Article.autopublish_deadline).is_not(None))
            .where(col(Article.autopublish_deadline) <= now)
            .order_by(col(Article.autopublish_deadline))
        )
        with self._session() as session:
            return list(session.exec(statement).all())

    # -- versions ---------------------------------------------------------

    async def list_versions(self, article_id: int) -> list[ArticleVersion]:
        """All versions of an article, oldest first."""
        statement = (
            select(ArticleVersion)
            .where(ArticleVersion.article_id == article_id)
            .order_by(col(ArticleVersion.version_number))
        )
        with self._session(article_id) as session:
            return list(session.exec(statement).all())

    async def get_version(self, version_id: int) -> ArticleVersion | None:
        with self._session() as session:
            return session.get(ArticleVersion, version_id)

    async def insert_version(
        self, version: ArticleVersion, article_patch: dict[str, Any] | None = None
    ) -> ArticleVersion:
        """Insert a version row as-is, pointing the article at it when current."""
        with self._session(version.article_id) as session:
            article = session.get(Article, version.article_id)
            if article is None:
                raise NotFound("Article", version.article_id)
            session.add(version)
            session.flush()
            for key, value in (article_patch or {}).items():
                setattr(article, key, value)
            if version.is_current:
                article.current_version_id = version.id
            session.add(article)
            session.commit()
            return version

    async def commit_version(
        self,
        version: ArticleVersion,
        article_patch: dict[str, Any],
        *,
        baseline: ArticleVersion | None = None,
    ) -> ArticleVersion:
        """Append ``version`` as the new current version in one transaction.

        The next version number is computed inside the transaction. A
        ``baseline`` original snapshot is written first when the article
        has no versions yet.
        """
        article_id = version.article_id
        with self._session(article_id) as session:
            article = session.get(Article, article_id)
            if article is None:
                raise NotFound("Article", article_id)

            existing = list(
                session.exec(
                    select(ArticleVersion).where(ArticleVersion.article_id == article_id)
                ).all()
            )
            if baseline is not None and not existing:
                baseline.version_number = 1
                baseline.version_type = VersionType.ORIGINAL
                baseline.is_current = False
                session.add(baseline)
                existing.append(baseline)

            for current in (v for v in existing if v.is_current):
                current.is_current = False
                session.add(current)
            session.flush()

            version.version_number = max((v.version_number for v in existing), default=0) + 1
            version.is_current = True
            session.add(version)
            session.flush()

            for key, value in article_patch.items():
                setattr(article, key, value)
            article.current_version_id = version.id
            article.version_count = version.version_number
            article.updated_at = datetime.now()
            session.add(article)
            session.commit()
            return version

    async def update_version_currency(
        self,
        article_id: int,
        current_id: int,
        article_patch: dict[str, Any] | None = None,
    ) -> ArticleVersion:
        """Make ``current_id`` the single current version of the article."""
        with self._session(article_id) as session:
            target = session.get(ArticleVersion, current_id)
            if target is None or target.article_id != article_id:
                raise NotFound("Version", current_id)
            article = session.get(Article, article_id)
            if article is None:
                raise NotFound("Article", article_id)

            statement = (
                select(ArticleVersion)
                .where(ArticleVersion.article_id == article_id)
                .where(col(ArticleVersion.is_current).is_(True))
            )
            for current in session.exec(statement).all():
                current.is_current = False
                session.add(current)
            session.flush()

            target.is_current = True
            session.add(target)
            session.flush()

            for key, value in (article_patch or {}).items():
                setattr(article, key, value)
            article.current_version_id = target.id
            article.updated_at = datetime.now()
            session.add(article)
            session.commit()
            return target

    # -- audit ------------------------------------------------------------

    async def record_event(
        self, article_id: int | None, kind: str, status: str, details: dict | None = None
    ) -> AuditEvent:
        event = AuditEvent(
            article_id=article_id,
            kind=kind,
            status=status,
            details_json=json.dumps(details or {}, default=str),
        )
        with self._session(article_id) as session:
            session.add(event)
            session.commit()
            return event

    async def list_events(
        self, article_id: int | None = None, kind: str | None = None
    ) -> list[AuditEvent]:
        statement = select(AuditEvent).order_by(col(AuditEvent.id))
        if article_id is not None:
            statement = statement.where(AuditEvent.article_id == article_id)
        if kind is not None:
            statement = statement.where(AuditEvent.kind == kind)
        with self._session(article_id) as session:
            return list(session.exec(statement).all())

    # -- system settings --------------------------------------------------

    async def get_settings_map(self) -> dict[str, str]:
        with self._session() as session:
            return {row.key: row.value for row in session.exec(select(SystemSetting)).all()}

    async def put_setting(self, key: str, value: str) -> None:
        with self._session() as session:
            row = session.get(SystemSetting, key) or SystemSetting(key=key, value=value)
            row.value = value
            row.updated_at = datetime.now()
            session.add(row)
            session.commit()

    # -- site catalog -----------------------------------------------------

    async def add_catalog_entry(self, entry: CatalogEntry) -> CatalogEntry:
        with self._session() as session:
            session.add(entry)
            session.commit()
            return entry

    async def find_catalog_entries(
        self, topics: list[str], *, exclude_urls: list[str], limit: int = 10
    ) -> list[CatalogEntry]:
        """Catalog pages whose title, subject or topics mention any hint."""
        hints = [t.lower() for t in topics if t]
        if not hints:
            return []
        with self._session() as session:
            entries = session.exec(select(CatalogEntry).order_by(col(CatalogEntry.id))).all()

        scored: list[tuple[int, CatalogEntry]] = []
        for entry in entries:
            if entry.url in exclude_urls:
                continue
            haystack = " ".join([entry.title, entry.subject_area, *entry.topics]).lower()
            score = sum(1 for hint in hints if hint in haystack)
            if score:
                scored.append((score, entry))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in scored[:limit]]
