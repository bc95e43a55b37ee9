"""SQLite persistence gateway for jobs and search run tracking.

Dedup is enforced by the storage layer: a UNIQUE index on ``url`` and a
UNIQUE index on ``(title, company, location)``. ``upsert_job`` inserts with
``ON CONFLICT DO NOTHING`` and resolves the existing row inside the same
transaction, so concurrent ingestions of the same posting cannot create two
rows.
"""

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from jobfeed.core.schemas import JobType, NormalizedJob, PersistedJob

UpsertOutcome = Literal["inserted", "updated", "unchanged"]

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id          TEXT    NOT NULL,
    title           TEXT    NOT NULL,
    company         TEXT    NOT NULL,
    location        TEXT    NOT NULL,
    description     TEXT    NOT NULL DEFAULT '',
    url             TEXT    NOT NULL DEFAULT '',
    posted_date     TEXT,
    salary          TEXT,
    job_type        TEXT    NOT NULL DEFAULT 'full-time'
                    CHECK (job_type IN ('full-time', 'part-time', 'contract', 'internship')),
    source          TEXT    NOT NULL DEFAULT 'Other',
    engine          TEXT    NOT NULL DEFAULT '',
    engine_score    REAL    NOT NULL DEFAULT 0.0,
    ai_score        REAL    CHECK (ai_score IS NULL OR (ai_score >= 0 AND ai_score <= 100)),
    ai_reasons      TEXT    NOT NULL DEFAULT '[]',
    source_query    TEXT    NOT NULL DEFAULT '',
    is_active       INTEGER NOT NULL DEFAULT 1,
    is_bookmarked   INTEGER NOT NULL DEFAULT 0,
    is_skipped      INTEGER NOT NULL DEFAULT 0,
    skipped_by      TEXT,
    skipped_at      TEXT,
    created_at      TEXT    NOT NULL,
    updated_at      TEXT    NOT NULL
);
"""

# Results without a URL are only deduplicated by their identity triple.
_JOBS_URL_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_url ON jobs (url) WHERE url != '';
"""

_JOBS_IDENTITY_INDEX = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_identity ON jobs (title, company, location);
"""

_JOBS_POSTED_INDEX = """
CREATE INDEX IF NOT EXISTS idx_jobs_posted ON jobs (posted_date);
"""

_SEARCH_RUNS_TABLE = """
CREATE TABLE IF NOT EXISTS search_runs (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    query            TEXT    NOT NULL,
    max_pages        INTEGER NOT NULL,
    pages_requested  INTEGER NOT NULL,
    pages_succeeded  INTEGER NOT NULL,
    total_reported   INTEGER NOT NULL,
    result_count     INTEGER NOT NULL,
    saved_count      INTEGER NOT NULL,
    aborted          INTEGER NOT NULL DEFAULT 0,
    started_at       TEXT    NOT NULL,
    finished_at      TEXT    NOT NULL
);
"""

_INSERT_JOB = """
INSERT INTO jobs
    (job_id, title, company, location, description, url, posted_date, salary,
     job_type, source, engine, engine_score, ai_score, ai_reasons, source_query,
     is_active, is_bookmarked, is_skipped, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, 0, 0, ?, ?)
ON CONFLICT DO NOTHING
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database, tables and indexes, returning a connection.

    The caller owns the connection and is responsible for closing it.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_JOBS_TABLE)
    conn.execute(_JOBS_URL_INDEX)
    conn.execute(_JOBS_IDENTITY_INDEX)
    conn.execute(_JOBS_POSTED_INDEX)
    conn.execute(_SEARCH_RUNS_TABLE)
    conn.commit()
    return conn


def health_check(conn: sqlite3.Connection) -> bool:
    """Return True if the connection can run a trivial query."""
    try:
        conn.execute("SELECT 1").fetchone()
    except sqlite3.Error:
        return False
    return True


def upsert_job(
    conn: sqlite3.Connection,
    job: NormalizedJob,
    source_query: str = "",
    now: datetime | None = None,
) -> tuple[PersistedJob, UpsertOutcome]:
    """Insert a job, or merge it into the row it duplicates.

    A duplicate only has ``ai_score``/``ai_reasons`` refreshed, and only when
    the incoming job carries a score. Runs as one transaction.

    Raises:
        sqlite3.Error: the write was rejected (e.g. a CHECK constraint).
    """
    stamp = (now or datetime.now(timezone.utc)).isoformat()
    with conn:
        cursor = conn.execute(
            _INSERT_JOB,
            (
                job.id,
                job.title,
                job.company,
                job.location,
                job.description,
                job.url,
                job.posted_date.isoformat() if job.posted_date else None,
                job.salary,
                job.job_type,
                job.source,
                job.engine,
                job.engine_score,
                job.ai_score,
                json.dumps(job.ai_reasons),
                source_query,
                stamp,
                stamp,
            ),
        )
        if cursor.rowcount == 1:
            return _get_row_job(conn, cursor.lastrowid or 0), "inserted"

        row = _find_row(conn, job.url, job.title, job.company, job.location)
        if row is None:
            msg = f"insert of '{job.title}' conflicted but no matching row was found"
            raise sqlite3.IntegrityError(msg)

        if job.ai_score is None:
            return _row_to_job(row), "unchanged"

        conn.execute(
            "UPDATE jobs SET ai_score = ?, ai_reasons = ?, updated_at = ? WHERE id = ?",
            (job.ai_score, json.dumps(job.ai_reasons), stamp, row["id"]),
        )
        return _get_row_job(conn, row["id"]), "updated"


def find_job(
    conn: sqlite3.Connection,
    url: str,
    title: str,
    company: str,
    location: str,
) -> PersistedJob | None:
    """Look up a stored job by URL, falling back to (title, company, location)."""
    row = _find_row(conn, url, title, company, location)
    return _row_to_job(row) if row is not None else None


def get_job(conn: sqlite3.Connection, db_id: int) -> PersistedJob | None:
    row = conn.execute("SELECT * FROM jobs WHERE id = ?", (db_id,)).fetchone()
    return _row_to_job(row) if row is not None else None


def count_jobs(conn: sqlite3.Connection) -> int:
    return int(conn.execute("SELECT COUNT(*) FROM jobs").fetchone()[0])


def list_jobs(
    conn: sqlite3.Connection,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    location: str | None = None,
    company: str | None = None,
    job_type: JobType | None = None,
    include_skipped: bool = False,
    limit: int = 100,
) -> list[PersistedJob]:
    """Return active jobs, newest posting first (unknown dates last).

    ``location`` and ``company`` are case-insensitive substring filters.
    """
    clauses = ["is_active = 1"]
    params: list[object] = []
    if not include_skipped:
        clauses.append("is_skipped = 0")
    if date_from is not None:
        clauses.append("posted_date >= ?")
        params.append(date_from.isoformat())
    if date_to is not None:
        clauses.append("posted_date <= ?")
        params.append(date_to.isoformat())
    if location:
        clauses.append("location LIKE ?")
        params.append(f"%{location}%")
    if company:
        clauses.append("company LIKE ?")
        params.append(f"%{company}%")
    if job_type:
        clauses.append("job_type = ?")
        params.append(job_type)
    params.append(limit)

    rows = conn.execute(
        f"""
        SELECT * FROM jobs
        WHERE {" AND ".join(clauses)}
        ORDER BY posted_date IS NULL, posted_date DESC, id DESC
        LIMIT ?
        """,
        params,
    ).fetchall()
    return [_row_to_job(r) for r in rows]


def set_bookmarked(conn: sqlite3.Connection, db_id: int, bookmarked: bool = True) -> bool:
    """Toggle the bookmark flag. Returns False if the job does not exist."""
    stamp = datetime.now(timezone.utc).isoformat()
    cursor = conn.execute(
        "UPDATE jobs SET is_bookmarked = ?, updated_at = ? WHERE id = ?",
        (int(bookmarked), stamp, db_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def set_skipped(
    conn: sqlite3.Connection,
    db_id: int,
    skipped: bool = True,
    skipped_by: str | None = None,
) -> bool:
    """Mark a job as skipped (hidden from listings) or restore it."""
    stamp = datetime.now(timezone.utc).isoformat()
    cursor = conn.execute(
        """
        UPDATE jobs
        SET is_skipped = ?, skipped_by = ?, skipped_at = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            int(skipped),
            skipped_by if skipped else None,
            stamp if skipped else None,
            stamp,
            db_id,
        ),
    )
    conn.commit()
    return cursor.rowcount > 0


def insert_search_run(
    conn: sqlite3.Connection,
    query: str,
    max_pages: int,
    pages_requested: int,
    pages_succeeded: int,
    total_reported: int,
    result_count: int,
    saved_count: int,
    aborted: bool,
    started_at: datetime,
    finished_at: datetime,
) -> int:
    """Record a completed aggregation run. Returns the row ID."""
    cursor = conn.execute(
        """
        INSERT INTO search_runs
            (query, max_pages, pages_requested, pages_succeeded, total_reported,
             result_count, saved_count, aborted, started_at, finished_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            query,
            max_pages,
            pages_requested,
            pages_succeeded,
            total_reported,
            result_count,
            saved_count,
            int(aborted),
            started_at.isoformat(),
            finished_at.isoformat(),
        ),
    )
    conn.commit()
    return cursor.lastrowid or 0


# --- Private helpers ---


def _find_row(
    conn: sqlite3.Connection,
    url: str,
    title: str,
    company: str,
    location: str,
) -> sqlite3.Row | None:
    if url:
        row = conn.execute("SELECT * FROM jobs WHERE url = ? LIMIT 1", (url,)).fetchone()
        if row is not None:
            return row
    return conn.execute(
        "SELECT * FROM jobs WHERE title = ? AND company = ? AND location = ? LIMIT 1",
        (title, company, location),
    ).fetchone()


def _get_row_job(conn: sqlite3.Connection, db_id: int) -> PersistedJob:
    row = conn.execute("SELECT * FROM jobs WHERE id = ?", (db_id,)).fetchone()
    return _row_to_job(row)


def _row_to_job(row: sqlite3.Row) -> PersistedJob:
    return PersistedJob(
        db_id=row["id"],
        id=row["job_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"],
        description=row["description"],
        url=row["url"],
        posted_date=row["posted_date"],
        salary=row["salary"],
        job_type=row["job_type"],
        source=row["source"],
        engine=row["engine"],
        engine_score=row["engine_score"],
        ai_score=row["ai_score"],
        ai_reasons=json.loads(row["ai_reasons"] or "[]"),
        source_query=row["source_query"],
        is_active=bool(row["is_active"]),
        is_bookmarked=bool(row["is_bookmarked"]),
        is_skipped=bool(row["is_skipped"]),
        skipped_by=row["skipped_by"],
        skipped_at=row["skipped_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
