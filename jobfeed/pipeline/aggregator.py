"""Multi-page aggregation: drives the search client across a page range.

Data flow:
  1. Pages 1..max_pages, strictly one after another
  2. SearchClient.search → normalized jobs per page
  3. Consecutive-failure circuit breaker (abort after N failures in a row)
  4. Optional DedupStore persistence + search run record
"""

import asyncio
import json
import logging
import sqlite3
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol

from jobfeed.core.config import AggregationConfig
from jobfeed.core.db import insert_search_run
from jobfeed.core.schemas import AggregationResult, NormalizedJob, SaveResult, SearchResponse
from jobfeed.pipeline.dedup_store import DedupStore

logger = logging.getLogger(__name__)


class SearchBackend(Protocol):
    """Minimal search interface so tests can use a fake instead of httpx."""

    async def search(self, query: str, **options: Any) -> SearchResponse: ...


class PageAggregator:
    """Runs multi-page searches and optionally persists the results.

    Usage::

        aggregator = PageAggregator(client, DedupStore(conn), settings.aggregation)
        result = await aggregator.search_all_pages("mern hiring", max_pages=2, persist=True)
    """

    def __init__(
        self,
        client: SearchBackend,
        store: DedupStore | None = None,
        config: AggregationConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._store = store
        self._config = config or AggregationConfig()
        self._clock = clock

    async def search_all_pages(
        self,
        query: str,
        max_pages: int | None = None,
        persist: bool = False,
        deadline_s: float | None = None,
    ) -> AggregationResult:
        """Fetch up to ``max_pages`` pages and accumulate normalized jobs.

        Never raises for backend failures: two consecutive page failures stop
        the run and the pages collected so far are returned. ``deadline_s``
        bounds the wall-clock time spent before a new page is started.
        """
        pages = self._config.max_pages if max_pages is None else max_pages
        store = self._require_store() if persist else None
        started_at = datetime.now(timezone.utc)
        started = self._clock()

        results: list[NormalizedJob] = []
        total_reported = 0
        pages_requested = 0
        pages_succeeded = 0
        consecutive_failures = 0
        aborted = False

        for page in range(1, pages + 1):
            if page > 1:
                await asyncio.sleep(self._config.page_delay_s)
            if deadline_s is not None and self._clock() - started >= deadline_s:
                logger.warning(
                    "Search '%s' hit its %.1fs deadline before page %d, stopping",
                    query, deadline_s, page,
                )
                aborted = True
                break

            pages_requested += 1
            response = await self._client.search(query, pageno=page)

            if not response.success or response.data is None:
                consecutive_failures += 1
                logger.error("Page %d of '%s' failed: %s", page, query, response.error)
                if consecutive_failures >= self._config.max_consecutive_failures:
                    logger.warning(
                        "Aborting '%s' after %d consecutive page failures",
                        query, consecutive_failures,
                    )
                    aborted = True
                    break
                continue

            consecutive_failures = 0
            pages_succeeded += 1
            results.extend(response.data.results)
            total_reported = response.data.number_of_results

        result = AggregationResult(
            query=query,
            total_results_reported=total_reported,
            max_pages=pages,
            pages_requested=pages_requested,
            pages_succeeded=pages_succeeded,
            aborted=aborted,
            results=results,
        )

        if store is not None:
            result.storage = store.save_job_results(results, source_query=query)
            self._record_run(store, result, started_at)

        logger.info(
            "Search '%s': %d/%d pages ok, %d jobs, %d reported%s",
            query, pages_succeeded, pages_requested, len(results), total_reported,
            " (aborted)" if aborted else "",
        )
        return result

    async def search_all_pages_and_store(
        self, query: str, max_pages: int | None = None,
    ) -> AggregationResult:
        return await self.search_all_pages(query, max_pages, persist=True)

    async def search_and_store(
        self, query: str, **options: Any,
    ) -> tuple[SearchResponse, SaveResult | None]:
        """Single-page search whose results are persisted when it succeeds.

        Returns the search response and, on success, the persistence summary.
        """
        response = await self._client.search(query, **options)
        if not response.success or response.data is None:
            return response, None
        storage = self._require_store().save_job_results(response.data.results, source_query=query)
        return response, storage

    def _require_store(self) -> DedupStore:
        if self._store is None:
            msg = "persistence requested but PageAggregator has no DedupStore"
            raise RuntimeError(msg)
        return self._store

    def _record_run(self, store: DedupStore, result: AggregationResult, started_at: datetime) -> None:
        """Write the search run row. A failed write is logged, never raised."""
        saved = result.storage.saved if result.storage else 0
        try:
            insert_search_run(
                store.conn,
                query=result.query,
                max_pages=result.max_pages,
                pages_requested=result.pages_requested,
                pages_succeeded=result.pages_succeeded,
                total_reported=result.total_results_reported,
                result_count=len(result.results),
                saved_count=saved,
                aborted=result.aborted,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
            )
        except sqlite3.Error:
            logger.exception("Failed to record search run for '%s'", result.query)


def export_results_json(result: AggregationResult) -> str:
    """Export an aggregation's jobs as a JSON string."""
    data = [job.model_dump(mode="json") for job in result.results]
    return json.dumps(data, indent=2)
