"""Auto-publish policy and its explicitly refreshed cache."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from perdia.config import Settings
from perdia.errors import PersistenceFailed
from perdia.storage.models import RiskLevel
from perdia.storage.store import ArticleStore

logger = logging.getLogger(__name__)


class AutoPublishPolicy(BaseModel):
    enabled: bool = False
    max_risk_level: RiskLevel = RiskLevel.LOW
    min_quality_score: int = Field(default=80, ge=0, le=100)
    max_articles_per_run: int = Field(default=10, ge=1)
    days_until_deadline: int = Field(default=5, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> AutoPublishPolicy:
        return cls(
            enabled=settings.autopublish_enabled,
            max_risk_level=RiskLevel(settings.autopublish_max_risk_level.upper()),
            min_quality_score=settings.autopublish_min_quality_score,
            max_articles_per_run=settings.autopublish_max_articles_per_run,
            days_until_deadline=settings.autopublish_days,
        )

    def with_overrides(self, rows: dict[str, str]) -> AutoPublishPolicy:
        """Overlay ``system_settings``-style rows on this policy."""
        updates: dict = {}
        if "enable_auto_publish" in rows:
            updates["enabled"] = _truthy(rows["enable_auto_publish"])
        if "auto_publish_days" in rows:
            updates["days_until_deadline"] = _int_or(rows["auto_publish_days"], self.days_until_deadline)
        if "block_high_risk_publish" in rows:
            block = _truthy(rows["block_high_risk_publish"])
            updates["max_risk_level"] = RiskLevel.LOW if block else RiskLevel.MEDIUM
        if "quality_threshold_publish" in rows:
            updates["min_quality_score"] = _int_or(
                rows["quality_threshold_publish"], self.min_quality_score
            )
        if "auto_publish_max_per_run" in rows:
            updates["max_articles_per_run"] = _int_or(
                rows["auto_publish_max_per_run"], self.max_articles_per_run
            )
        return self.model_copy(update=updates)


def _truthy(value: str) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _int_or(value: str, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class PolicyCache:
    """A loaded policy and when it was loaded."""

    policy: AutoPublishPolicy
    loaded_at: datetime

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.loaded_at < ttl


class PolicyLoader:
    """Builds the effective policy from settings defaults plus stored overrides."""

    def __init__(self, store: ArticleStore, settings: Settings) -> None:
        self._store = store
        self._defaults = AutoPublishPolicy.from_settings(settings)
        self._ttl = timedelta(seconds=settings.policy_cache_ttl_seconds)

    async def load(self) -> PolicyCache:
        try:
            rows = await self._store.get_settings_map()
        except PersistenceFailed as exc:
            logger.warning("Falling back to default auto-publish policy: %s", exc)
            rows = {}
        return PolicyCache(self._defaults.with_overrides(rows), datetime.now())

    async def refresh(self, cache: PolicyCache | None, now: datetime | None = None) -> PolicyCache:
        """Return ``cache`` while fresh, otherwise a newly loaded one."""
        if cache is not None and cache.is_fresh(now or datetime.now(), self._ttl):
            return cache
        return await self.load()
