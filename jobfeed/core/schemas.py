"""Core data models: search requests, raw and normalized jobs, run summaries."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

JobType = Literal["full-time", "part-time", "contract", "internship"]
JobSource = Literal["Naukri", "LinkedIn", "Indeed", "Glassdoor", "Monster", "Other"]


class SearchQuery(BaseModel):
    """One page request against the meta-search backend.

    Frozen. Build a new query per page instead of mutating ``pageno``.
    """

    model_config = ConfigDict(frozen=True)

    q: str
    pageno: int = Field(default=1, ge=1)
    time_range: str = "month"
    categories: str = "it,news"
    engines: str = "duckduckgo,bing,google,wikipedia,brave"
    enabled_engines: str = "google"
    disabled_engines: str = ""
    language: str = "en"
    safesearch: str = "1"
    autocomplete: str = "duckduckgo"
    image_proxy: str = "True"
    results_on_new_tab: str = "0"
    theme: str = "simple"
    enabled_plugins: str = "Hash_plugin,Self_Information,Tracker_URL_remover,Ahmia_blacklist"
    disabled_plugins: str = ""

    def to_params(self) -> dict[str, str]:
        """Render as query-string parameters, always requesting JSON."""
        params = {k: str(v) for k, v in self.model_dump().items()}
        params["format"] = "json"
        return params


class RawResult(BaseModel):
    """A single result as returned by the backend. Never persisted as-is."""

    model_config = ConfigDict(extra="ignore")

    title: str | None = None
    content: str | None = None
    url: str | None = None
    engine: str | None = None
    score: float | None = None


class NormalizedJob(BaseModel):
    """A job record extracted from a search snippet.

    ``id`` is derived from the URL, so re-extracting the same result yields
    the same id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    company: str = "Unknown Company"
    location: str = "Remote"
    description: str = ""
    url: str = ""
    posted_date: datetime | None = None
    salary: str | None = None
    job_type: JobType = "full-time"
    source: JobSource = "Other"
    engine: str = "google"
    engine_score: float = 0.0
    ai_score: float | None = Field(default=None, ge=0.0, le=100.0)
    ai_reasons: list[str] = Field(default_factory=list)

    def with_ai_score(self, score: float | None, reasons: list[str] | None = None) -> "NormalizedJob":
        """Return a copy carrying an externally computed AI score."""
        return self.model_validate(
            {**self.model_dump(), "ai_score": score, "ai_reasons": list(reasons or [])},
        )


class PersistedJob(NormalizedJob):
    """A NormalizedJob as stored, plus storage identity and user flags."""

    model_config = ConfigDict(frozen=True)

    db_id: int
    source_query: str = ""
    is_active: bool = True
    is_bookmarked: bool = False
    is_skipped: bool = False
    skipped_by: str | None = None
    skipped_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SearchData(BaseModel):
    """Payload of a successful single-page search."""

    number_of_results: int = 0
    results: list[NormalizedJob] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Outcome of a single-page search: either data or an error message."""

    success: bool
    data: SearchData | None = None
    error: str | None = None


class SaveResult(BaseModel):
    """Summary of a persistence batch."""

    jobs: list[PersistedJob] = Field(default_factory=list)
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    total: int = 0

    @property
    def saved(self) -> int:
        """Number of records saved or matched (inserted, updated or unchanged)."""
        return len(self.jobs)


class AggregationResult(BaseModel):
    """Summary of a multi-page search run."""

    query: str
    total_results_reported: int = 0
    max_pages: int
    pages_requested: int = 0
    pages_succeeded: int = 0
    aborted: bool = False
    results: list[NormalizedJob] = Field(default_factory=list)
    storage: SaveResult | None = None
