"""Integration test: client → aggregator → dedup store against a mock HTTP backend."""

import asyncio
import json
import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from jobfeed.core.config import RetryConfig, SearchBackendConfig
from jobfeed.core.db import count_jobs, init_db, list_jobs
from jobfeed.pipeline.aggregator import PageAggregator, export_results_json
from jobfeed.pipeline.dedup_store import DedupStore
from jobfeed.search.client import SearchClient

# ---------------------------------------------------------------------------
# Mock backend
# ---------------------------------------------------------------------------

PAGE_ONE = {
    "number_of_results": 2,
    "results": [
        {
            "title": "MERN Developer at Acme",
            "content": "Remote position, $80,000 - $100,000, posted 2 days ago",
            "url": "https://www.linkedin.com/jobs/view/1001/",
            "engine": "google",
            "score": 3.5,
        },
        {
            "title": "MERN Stack Engineer at Acme",
            "content": "Remote position, $80,000 - $100,000, posted 2 days ago",
            "url": "https://www.naukri.com/job-listings-1002",
            "engine": "bing",
            "score": 2.0,
        },
    ],
}


class MockBackend:
    """Serves page 1 from a fixture and answers 500 for every other page."""

    def __init__(self, pages: dict[str, dict[str, object]]) -> None:
        self._pages = pages
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        payload = self._pages.get(request.url.params["pageno"])
        if payload is None:
            return httpx.Response(500, text="upstream error")
        return httpx.Response(200, json=payload)

    def pages_requested(self) -> list[str]:
        return [r.url.params["pageno"] for r in self.requests]


def _client(backend: MockBackend, retry_sleep: AsyncMock) -> SearchClient:
    return SearchClient(
        SearchBackendConfig(base_urls=["https://searx.example/search"]),
        RetryConfig(max_retries=3),
        transport=httpx.MockTransport(backend),
        sleep=retry_sleep,
    )


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestSearchPipeline:
    """End-to-end: HTTP → normalize → aggregate → dedup → DB."""

    @pytest.fixture
    def db(self, tmp_path: pytest.TempPathFactory) -> sqlite3.Connection:  # type: ignore[type-arg]
        return init_db(tmp_path / "test.db")

    @pytest.fixture(autouse=True)
    def page_sleep(self):  # type: ignore[no-untyped-def]
        with patch.object(asyncio, "sleep", new_callable=AsyncMock) as mock_sleep:
            yield mock_sleep

    async def test_failed_second_page_keeps_first(self, db: sqlite3.Connection) -> None:
        """Page 2 exhausts its retries; page 1 results are still returned and stored."""
        backend = MockBackend({"1": PAGE_ONE})
        retry_sleep = AsyncMock()

        async with _client(backend, retry_sleep) as client:
            aggregator = PageAggregator(client, DedupStore(db))
            result = await aggregator.search_all_pages("mern hiring", max_pages=2, persist=True)

        # 1 request for page 1, 1 initial + 3 retries for page 2
        assert backend.pages_requested() == ["1", "2", "2", "2", "2"]
        assert [c.args[0] for c in retry_sleep.await_args_list] == [2.0, 4.0, 8.0]

        assert result.pages_requested == 2
        assert result.pages_succeeded == 1
        assert result.aborted is False
        assert result.total_results_reported == 2
        assert len(result.results) == 2

        expected_date = datetime.now(timezone.utc) - timedelta(days=2)
        for job in result.results:
            assert job.company == "Acme"
            assert job.location == "Remote"
            assert job.salary == "$80,000 - $100,000"
            assert job.posted_date is not None
            assert abs(job.posted_date - expected_date) < timedelta(minutes=5)
        assert [j.source for j in result.results] == ["LinkedIn", "Naukri"]

        assert result.storage is not None
        assert result.storage.inserted == 2
        stored = list_jobs(db)
        assert len(stored) == 2
        assert all(j.is_active for j in stored)
        assert {j.source_query for j in stored} == {"mern hiring"}

    async def test_rerun_does_not_duplicate(self, db: sqlite3.Connection) -> None:
        """Running the same search twice leaves one row per posting."""
        backend = MockBackend({"1": PAGE_ONE})

        async with _client(backend, AsyncMock()) as client:
            aggregator = PageAggregator(client, DedupStore(db))
            first = await aggregator.search_all_pages("mern hiring", max_pages=1, persist=True)
            second = await aggregator.search_all_pages("mern hiring", max_pages=1, persist=True)

        assert first.storage is not None and first.storage.inserted == 2
        assert second.storage is not None
        assert second.storage.inserted == 0
        assert second.storage.unchanged == 2
        assert count_jobs(db) == 2

    async def test_all_pages_failing_aborts(self, db: sqlite3.Connection) -> None:
        backend = MockBackend({})

        async with _client(backend, AsyncMock()) as client:
            aggregator = PageAggregator(client, DedupStore(db))
            result = await aggregator.search_all_pages("mern hiring", max_pages=3, persist=True)

        assert result.aborted is True
        assert result.pages_requested == 2
        assert result.results == []
        assert count_jobs(db) == 0
        run = db.execute("SELECT aborted, pages_succeeded FROM search_runs").fetchone()
        assert run["aborted"] == 1
        assert run["pages_succeeded"] == 0

    async def test_export_json(self, db: sqlite3.Connection) -> None:
        backend = MockBackend({"1": PAGE_ONE})

        async with _client(backend, AsyncMock()) as client:
            result = await PageAggregator(client).search_all_pages("mern hiring", max_pages=1)

        data = json.loads(export_results_json(result))
        assert len(data) == 2
        assert data[0]["company"] == "Acme"
        assert data[0]["url"] == "https://www.linkedin.com/jobs/view/1001/"
