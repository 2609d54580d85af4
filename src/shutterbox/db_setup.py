"""Utility CLI for creating the SQL database and pruning old log rows."""

from __future__ import annotations

import argparse
import sys

from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import get_engine, get_session_factory, is_database_configured, prepare_schema
from .logs import SQLLogRepository
from .retention import RetentionSweeper


def ensure_configured() -> None:
    if not is_database_configured():
        raise SystemExit("SHUTTERBOX_DB_URL is not set; cannot run database commands.")


def init_db() -> None:
    """Create database tables if they do not already exist."""
    ensure_configured()
    engine = get_engine()
    if engine is None:
        raise SystemExit("Unable to create engine for configured database URL.")

    prepare_schema(engine)
    print("Database tables ensured.")


def purge_logs(days: int) -> int:
    """Delete log rows older than ``days`` days and return the count."""
    ensure_configured()
    sweeper = RetentionSweeper(
        retention_days=days,
        repository=SQLLogRepository(get_session_factory()),
    )
    removed = sweeper.sweep()
    print(f"Removed {removed} log entries older than {days} days.")
    return removed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shutter service database utilities")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create database tables")

    purge_parser = subparsers.add_parser("purge-logs", help="Delete old log entries")
    purge_parser.add_argument(
        "--days",
        type=int,
        default=settings.log_retention_days,
        help="Retention horizon in days (default: %(default)s)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "init":
            init_db()
        elif args.command == "purge-logs":
            if args.days < 1:
                parser.error("--days must be at least 1")
            purge_logs(args.days)
    except SQLAlchemyError as exc:
        print(f"Database error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
