"""Configuration models and YAML/environment loader for jobfeed."""

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_SEARCH_API_URLS = "SEARCH_API_URLS"
ENV_DB_PATH = "JOBFEED_DB_PATH"


class SearchBackendConfig(BaseModel):
    """Meta-search backend endpoints and default request parameters."""

    base_urls: list[str] = Field(default_factory=lambda: ["https://search.canine.tools/search"])
    timeout_s: float = Field(default=10.0, gt=0)
    time_range: str = "month"
    categories: str = "it,news"
    language: str = "en"
    safesearch: str = "1"

    @field_validator("base_urls")
    @classmethod
    def at_least_one_url(cls, v: list[str]) -> list[str]:
        urls = [u.strip() for u in v if u.strip()]
        if not urls:
            msg = "at least one search backend URL must be configured"
            raise ValueError(msg)
        return urls


class RetryConfig(BaseModel):
    """Retry/backoff policy for a single page fetch."""

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=10000, ge=0)

    @model_validator(mode="after")
    def cap_not_below_base(self) -> "RetryConfig":
        if self.max_delay_ms < self.base_delay_ms:
            msg = "max_delay_ms must be >= base_delay_ms"
            raise ValueError(msg)
        return self


class AggregationConfig(BaseModel):
    """Multi-page aggregation behaviour."""

    max_pages: int = Field(default=3, ge=1, le=10)
    page_delay_s: float = Field(default=1.0, ge=0.0)
    max_consecutive_failures: int = Field(default=2, ge=1)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/jobs.db"


class Settings(BaseModel):
    """Top-level settings loaded from YAML, optionally overlaid by environment."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    search: SearchBackendConfig = Field(default_factory=SearchBackendConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

    def apply_env(self, environ: Mapping[str, str] | None = None) -> "Settings":
        """Return a copy with ``SEARCH_API_URLS`` and ``JOBFEED_DB_PATH`` applied.

        ``SEARCH_API_URLS`` must be a JSON-encoded list of base URLs.
        """
        env = os.environ if environ is None else environ
        data = self.model_dump()

        raw_urls = env.get(ENV_SEARCH_API_URLS)
        if raw_urls:
            data["search"]["base_urls"] = parse_url_list(raw_urls)

        db_path = env.get(ENV_DB_PATH)
        if db_path:
            data["database"]["path"] = db_path

        return self.model_validate(data)


def parse_url_list(raw: str) -> list[str]:
    """Parse a JSON list of URLs, e.g. ``'["https://a/search", "https://b/search"]'``."""
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        msg = f"{ENV_SEARCH_API_URLS} must be a JSON list of URLs: {e}"
        raise ValueError(msg) from e
    if not isinstance(value, list) or not all(isinstance(u, str) for u in value):
        msg = f"{ENV_SEARCH_API_URLS} must be a JSON list of strings"
        raise ValueError(msg)
    return value
