"""Configuration loading from environment variables with validation."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Anchor all paths to the project root (two levels up from this file)
_PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PERDIA_",
        case_sensitive=False,
    )

    # Provider credentials (loaded separately, no prefix)
    anthropic_api_key: str = ""
    xai_api_key: str = ""
    stealthgpt_api_key: str = ""

    # Claude (fallback generation, humanization, link insertion)
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4500
    temperature: float = 0.7
    humanize_temperature: float = 0.9

    # Grok (primary generation)
    grok_base_url: str = "https://api.x.ai/v1"
    grok_model: str = "grok-3"
    grok_max_tokens: int = 8000

    # StealthGPT (primary humanization)
    stealthgpt_base_url: str = "https://stealthgpt.ai/api"
    stealthgpt_tone: str = "College"
    stealthgpt_mode: str = "High"
    stealthgpt_max_iterations: int = 3
    stealthgpt_detection_threshold: int = 90

    # Provider call bounds
    provider_timeout_seconds: float = 180.0
    retry_attempts: int = 3

    # Storage
    db_path: Path = _PROJECT_DIR / "data" / "perdia.db"

    # Logging
    log_level: str = "INFO"

    # Site
    site_name: str = "GetEducated"

    # Publishing
    publish_webhook_url: str = ""
    approved_authors: list[str] = ["Tony Huffman", "Kayleigh Gilbert", "Sara", "Charity"]
    blocked_domains: list[str] = ["usnews.com", "onlineu.com", "bestcolleges.com"]

    # Quality thresholds
    min_word_count: int = 1500
    max_word_count: int = 2500
    min_internal_links: int = 3
    min_external_links: int = 2
    min_faqs: int = 3
    min_headings: int = 3
    max_avg_sentence_length: float = 25.0

    # Auto-publish defaults (overridden by system settings rows)
    autopublish_enabled: bool = False
    autopublish_days: int = 5
    autopublish_max_risk_level: str = "LOW"
    autopublish_min_quality_score: int = 80
    autopublish_max_articles_per_run: int = 10
    policy_cache_ttl_seconds: int = 60


def get_settings() -> Settings:
    """Load settings from environment and .env file."""
    # Load .env from the project root regardless of cwd
    load_dotenv(_PROJECT_DIR / ".env")
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        xai_api_key=os.getenv("XAI_API_KEY", ""),
        stealthgpt_api_key=os.getenv("STEALTHGPT_API_KEY", ""),
    )
