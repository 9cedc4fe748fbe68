#!/usr/bin/env python3
"""
Command-line interface for database management.
"""
import argparse
import logging
import sys
from pathlib import Path

from sqlalchemy import func, select

from .alerts import AlertHistoryLog
from .config import settings
from .database import DatabaseService
from .models import Alert, AlertHistory, Reading, Unit
from .readings import ReadingStore

logger = logging.getLogger("AutoFarm")


def show_info(db: DatabaseService) -> None:
    with db.get_session() as session:
        counts = {
            label: session.scalar(select(func.count()).select_from(model))
            for label, model in (
                ("Units", Unit),
                ("Readings", Reading),
                ("Alert rules", Alert),
                ("Alert firings", AlertHistory),
            )
        }
        if counts["Readings"]:
            min_date = session.scalar(select(func.min(Reading.timestamp)))
            max_date = session.scalar(select(func.max(Reading.timestamp)))
            date_range = f"from {min_date} to {max_date}"
        else:
            date_range = "N/A"

    print(f"Database: {db.db_path}")
    for label, count in counts.items():
        print(f"{label}: {count}")
    print(f"Reading range: {date_range}")


def export_readings(db: DatabaseService, output_path: str) -> int:
    """Write every stored reading to a CSV file. Returns the row count."""
    df = ReadingStore(db).readings_frame()
    df.to_csv(output_path, index=False)
    logger.info(f"Exported {len(df)} readings to {output_path}")
    return len(df)


def main(argv=None):
    """Main CLI entrypoint."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
        stream=sys.stdout,
    )

    parser = argparse.ArgumentParser(description="AutoFarm Database Management CLI")
    parser.add_argument(
        "--db", help="Path to SQLite database (default: from settings)", default=None
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("info", help="Show database information")

    export_parser = subparsers.add_parser("export", help="Export readings to CSV")
    export_parser.add_argument("--output", help="Path to output CSV file", required=True)

    subparsers.add_parser("purge-history", help="Delete all recorded alert firings")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    db_path = args.db or settings.database_path
    if not Path(db_path).exists():
        logger.error(f"Database file not found: {db_path}")
        return 1

    db = DatabaseService(db_path)
    try:
        if args.command == "info":
            show_info(db)
        elif args.command == "export":
            export_readings(db, args.output)
        elif args.command == "purge-history":
            AlertHistoryLog(db).purge()
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
