"""DedupStore: reconcile a batch of normalized jobs against the job table.

Per job, in input order:
  1. Match an existing row by url OR (title, company, location).
  2. No match → insert as active, not bookmarked, not skipped.
  3. Match + incoming ai_score → overwrite ai_score/ai_reasons.
     Match + no ai_score → leave the stored row untouched.
  4. Collect the inserted or matched row.

Batches are best-effort: a job whose write fails is logged and skipped, and
the rest of the batch still goes through.
"""

import logging
import sqlite3
from collections.abc import Iterable

from jobfeed.core.db import upsert_job
from jobfeed.core.schemas import NormalizedJob, PersistedJob, SaveResult

logger = logging.getLogger(__name__)


class DedupStore:
    """Dedup-aware persistence on top of an open database connection.

    Usage::

        store = DedupStore(conn)
        result = store.save_job_results(jobs, source_query="python developer")
        print(result.inserted, result.updated, result.failed)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def reconcile(self, jobs: Iterable[NormalizedJob]) -> list[PersistedJob]:
        """Persist ``jobs`` and return the inserted or matched records."""
        return self.save_job_results(jobs).jobs

    def save_job_results(
        self,
        jobs: Iterable[NormalizedJob],
        source_query: str = "",
    ) -> SaveResult:
        """Persist ``jobs`` and return per-outcome counts plus the saved records."""
        result = SaveResult()
        for job in jobs:
            result.total += 1
            try:
                persisted, outcome = upsert_job(self._conn, job, source_query)
            except (sqlite3.Error, ValueError):
                result.failed += 1
                logger.exception("Failed to save job '%s' (%s), skipping", job.title, job.url)
                continue

            if outcome == "inserted":
                result.inserted += 1
            elif outcome == "updated":
                result.updated += 1
            else:
                result.unchanged += 1
            result.jobs.append(persisted)

        logger.info(
            "Saved %d/%d jobs: %d new, %d updated, %d unchanged, %d failed",
            result.saved, result.total, result.inserted, result.updated,
            result.unchanged, result.failed,
        )
        return result
