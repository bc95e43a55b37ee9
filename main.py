"""CLI entry point for jobfeed."""

import argparse
import asyncio
import logging
import sys

from jobfeed.core.config import Settings
from jobfeed.core.db import count_jobs, health_check, init_db, list_jobs
from jobfeed.pipeline.aggregator import PageAggregator, export_results_json
from jobfeed.pipeline.dedup_store import DedupStore
from jobfeed.search.client import SearchClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="jobfeed - aggregate job postings from a meta-search backend",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- search subcommand ---
    search_parser = subparsers.add_parser("search", help="Run a multi-page job search")
    search_parser.add_argument("query", help="Free-text search query")
    search_parser.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Number of pages to fetch (default: aggregation.max_pages)",
    )
    search_parser.add_argument(
        "--store",
        action="store_true",
        help="Persist results to the database",
    )
    search_parser.add_argument(
        "--export",
        choices=["json"],
        help="Export results to format (json)",
    )

    # --- jobs subcommand ---
    jobs_parser = subparsers.add_parser("jobs", help="List stored jobs")
    jobs_parser.add_argument("--limit", type=int, default=20, help="Max rows (default: 20)")
    jobs_parser.add_argument("--location", default=None, help="Location substring filter")
    jobs_parser.add_argument("--company", default=None, help="Company substring filter")

    # --- health subcommand ---
    subparsers.add_parser("health", help="Check the database connection")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def load_settings(path: str | None) -> Settings:
    settings = Settings.from_yaml(path) if path else Settings()
    return settings.apply_env()


async def run_search(settings: Settings, args: argparse.Namespace) -> None:
    """Run one aggregation and print a summary."""
    conn = init_db(settings.database.path) if args.store else None
    try:
        store = DedupStore(conn) if conn is not None else None
        async with SearchClient(settings.search, settings.retry) as client:
            aggregator = PageAggregator(client, store, settings.aggregation)
            result = await aggregator.search_all_pages(
                args.query, max_pages=args.pages, persist=args.store,
            )
    finally:
        if conn is not None:
            conn.close()

    print(f"\nSearch '{result.query}': {len(result.results)} jobs from "
          f"{result.pages_succeeded}/{result.pages_requested} pages "
          f"({result.total_results_reported} reported by backend)")
    if result.aborted:
        print("  Stopped early after repeated page failures.")
    for job in result.results:
        posted = job.posted_date.date().isoformat() if job.posted_date else "unknown date"
        print(f"  - {job.title} | {job.company} | {job.location} | {posted} | {job.source}")

    if result.storage is not None:
        s = result.storage
        print(f"\nStored: {s.inserted} new, {s.updated} updated, "
              f"{s.unchanged} unchanged, {s.failed} failed")

    if args.export == "json":
        print(f"\n{export_results_json(result)}")


def cmd_jobs(settings: Settings, args: argparse.Namespace) -> None:
    """Handle the jobs subcommand."""
    conn = init_db(settings.database.path)
    try:
        jobs = list_jobs(conn, location=args.location, company=args.company, limit=args.limit)
        print(f"{count_jobs(conn)} jobs stored, showing {len(jobs)}:")
        for job in jobs:
            score = f"{job.ai_score:.0f}" if job.ai_score is not None else "-"
            flag = "*" if job.is_bookmarked else " "
            print(f" {flag}[{job.db_id}] {job.title} | {job.company} | {job.location} | score {score}")
    finally:
        conn.close()


def cmd_health(settings: Settings) -> int:
    """Handle the health subcommand. Returns the process exit code."""
    conn = init_db(settings.database.path)
    try:
        ok = health_check(conn)
    finally:
        conn.close()
    print(f"database {settings.database.path}: {'healthy' if ok else 'unhealthy'}")
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "jobs":
        cmd_jobs(settings, args)
    elif args.command == "health":
        sys.exit(cmd_health(settings))
    else:
        asyncio.run(run_search(settings, args))


if __name__ == "__main__":
    main()
