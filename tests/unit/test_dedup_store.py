"""Tests for DedupStore batch reconciliation."""

import logging
import sqlite3

import pytest

from jobfeed.core.db import count_jobs, init_db
from jobfeed.core.schemas import NormalizedJob
from jobfeed.pipeline.dedup_store import DedupStore


def _job(n: int, **kw: object) -> NormalizedJob:
    defaults: dict[str, object] = {
        "id": f"job-{n}",
        "title": f"Engineer {n}",
        "company": "Acme",
        "location": "Remote",
        "url": f"https://acme.io/jobs/{n}",
    }
    defaults.update(kw)
    return NormalizedJob(**defaults)  # type: ignore[arg-type]


@pytest.fixture
def db(tmp_path: pytest.TempPathFactory) -> sqlite3.Connection:  # type: ignore[type-arg]
    return init_db(tmp_path / "test.db")


@pytest.fixture
def store(db: sqlite3.Connection) -> DedupStore:
    return DedupStore(db)


class TestReconcile:
    def test_new_jobs_inserted_in_order(self, store: DedupStore) -> None:
        saved = store.reconcile([_job(3), _job(1), _job(2)])
        assert [j.id for j in saved] == ["job-3", "job-1", "job-2"]
        assert all(j.is_active and not j.is_bookmarked and not j.is_skipped for j in saved)

    def test_same_job_twice_is_one_row(self, store: DedupStore, db: sqlite3.Connection) -> None:
        first = store.reconcile([_job(1)])
        second = store.reconcile([_job(1)])
        assert count_jobs(db) == 1
        assert first[0].db_id == second[0].db_id

    def test_duplicate_within_batch(self, store: DedupStore, db: sqlite3.Connection) -> None:
        saved = store.reconcile([_job(1), _job(1)])
        assert count_jobs(db) == 1
        assert len(saved) == 2
        assert saved[0].db_id == saved[1].db_id

    def test_match_by_identity_triple(self, store: DedupStore, db: sqlite3.Connection) -> None:
        store.reconcile([_job(1)])
        store.reconcile([_job(1, url="https://mirror.example/1")])
        assert count_jobs(db) == 1

    def test_null_score_keeps_stored_score(self, store: DedupStore) -> None:
        store.reconcile([_job(1, ai_score=80.0, ai_reasons=["strong match"])])
        saved = store.reconcile([_job(1)])
        assert saved[0].ai_score == 80.0
        assert saved[0].ai_reasons == ["strong match"]

    def test_new_score_overwrites(self, store: DedupStore) -> None:
        store.reconcile([_job(1, ai_score=80.0)])
        saved = store.reconcile([_job(1).with_ai_score(35.0, ["stale stack"])])
        assert saved[0].ai_score == 35.0
        assert saved[0].ai_reasons == ["stale stack"]

    def test_empty_batch(self, store: DedupStore) -> None:
        assert store.reconcile([]) == []


class TestSaveJobResults:
    def test_counts(self, store: DedupStore) -> None:
        store.save_job_results([_job(1), _job(2, ai_score=10.0)])
        result = store.save_job_results([_job(1), _job(2, ai_score=20.0), _job(3)])
        assert result.total == 3
        assert result.inserted == 1
        assert result.updated == 1
        assert result.unchanged == 1
        assert result.failed == 0
        assert result.saved == 3

    def test_source_query_recorded(self, store: DedupStore) -> None:
        result = store.save_job_results([_job(1)], source_query="mern hiring")
        assert result.jobs[0].source_query == "mern hiring"

    def test_failed_job_does_not_abort_batch(
        self,
        store: DedupStore,
        db: sqlite3.Connection,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        bad = _job(2).model_copy(update={"ai_score": 150.0})
        with caplog.at_level(logging.ERROR, logger="jobfeed.pipeline.dedup_store"):
            result = store.save_job_results([_job(1), bad, _job(3)])

        assert result.failed == 1
        assert result.inserted == 2
        assert [j.id for j in result.jobs] == ["job-1", "job-3"]
        assert count_jobs(db) == 2
        assert "Failed to save job 'Engineer 2'" in caplog.text

    def test_conn_property(self, store: DedupStore, db: sqlite3.Connection) -> None:
        assert store.conn is db
