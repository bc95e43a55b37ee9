"""Tests for core schemas: SearchQuery, RawResult, NormalizedJob, run summaries."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from jobfeed.core.schemas import (
    AggregationResult,
    NormalizedJob,
    PersistedJob,
    RawResult,
    SaveResult,
    SearchQuery,
)


def _make_job(**overrides: object) -> NormalizedJob:
    defaults: dict[str, object] = {
        "id": "https___acme_io_jobs_1_0a1b2c3d",
        "title": "Senior Python Engineer",
        "company": "Acme Corp",
        "url": "https://acme.io/jobs/1",
    }
    defaults.update(overrides)
    return NormalizedJob(**defaults)  # type: ignore[arg-type]


class TestSearchQuery:
    def test_defaults(self) -> None:
        q = SearchQuery(q="python")
        assert q.pageno == 1
        assert q.time_range == "month"
        assert q.categories == "it,news"
        assert q.engines == "duckduckgo,bing,google,wikipedia,brave"

    def test_to_params_requests_json(self) -> None:
        params = SearchQuery(q="python", pageno=2).to_params()
        assert params["format"] == "json"
        assert params["pageno"] == "2"
        assert all(isinstance(v, str) for v in params.values())

    def test_pageno_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            SearchQuery(q="python", pageno=0)

    def test_frozen(self) -> None:
        q = SearchQuery(q="python")
        with pytest.raises(ValidationError):
            q.pageno = 2  # type: ignore[misc]


class TestRawResult:
    def test_all_optional(self) -> None:
        r = RawResult()
        assert r.title is None
        assert r.score is None

    def test_extra_fields_ignored(self) -> None:
        r = RawResult.model_validate({"title": "Dev", "thumbnail": "x.png", "positions": [1]})
        assert r.title == "Dev"
        assert not hasattr(r, "thumbnail")


class TestNormalizedJob:
    def test_defaults(self) -> None:
        job = NormalizedJob(id="x", title="Engineer")
        assert job.company == "Unknown Company"
        assert job.location == "Remote"
        assert job.job_type == "full-time"
        assert job.source == "Other"
        assert job.engine == "google"
        assert job.engine_score == 0.0
        assert job.posted_date is None
        assert job.ai_score is None
        assert job.ai_reasons == []

    def test_frozen_model(self) -> None:
        job = _make_job()
        with pytest.raises(ValidationError):
            job.title = "New Title"  # type: ignore[misc]

    def test_invalid_job_type(self) -> None:
        with pytest.raises(ValidationError):
            _make_job(job_type="temporary")

    def test_invalid_source(self) -> None:
        with pytest.raises(ValidationError):
            _make_job(source="Craigslist")

    @pytest.mark.parametrize("score", [-1.0, 100.5])
    def test_ai_score_bounds(self, score: float) -> None:
        with pytest.raises(ValidationError):
            _make_job(ai_score=score)

    def test_ai_score_edges_accepted(self) -> None:
        assert _make_job(ai_score=0.0).ai_score == 0.0
        assert _make_job(ai_score=100.0).ai_score == 100.0

    def test_with_ai_score(self) -> None:
        job = _make_job()
        scored = job.with_ai_score(72.0, ["python", "remote"])
        assert scored.ai_score == 72.0
        assert scored.ai_reasons == ["python", "remote"]
        assert job.ai_score is None
        assert scored.id == job.id

    def test_with_ai_score_validates(self) -> None:
        with pytest.raises(ValidationError):
            _make_job().with_ai_score(101.0)

    def test_equality(self) -> None:
        assert _make_job() == _make_job()
        assert _make_job(id="a") != _make_job(id="b")


class TestPersistedJob:
    def test_flags_default(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        job = PersistedJob(id="x", title="Dev", db_id=1, created_at=now, updated_at=now)
        assert job.is_active is True
        assert job.is_bookmarked is False
        assert job.is_skipped is False
        assert job.skipped_by is None

    def test_parses_iso_timestamps(self) -> None:
        job = PersistedJob(
            id="x",
            title="Dev",
            db_id=1,
            created_at="2026-01-01T00:00:00+00:00",  # type: ignore[arg-type]
            updated_at="2026-01-02T00:00:00+00:00",  # type: ignore[arg-type]
        )
        assert job.updated_at > job.created_at


class TestSummaries:
    def test_save_result_saved(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        stored = PersistedJob(id="x", title="Dev", db_id=1, created_at=now, updated_at=now)
        result = SaveResult(jobs=[stored, stored], inserted=1, unchanged=1, total=3, failed=1)
        assert result.saved == 2

    def test_aggregation_result_defaults(self) -> None:
        result = AggregationResult(query="python", max_pages=3)
        assert result.results == []
        assert result.pages_requested == 0
        assert result.aborted is False
        assert result.storage is None
