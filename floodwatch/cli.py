"""
Console entry point.

Usage:
    floodwatch init-db
    floodwatch seed
    floodwatch fetch-forecasts     # run from cron / a scheduler

Configuration comes from the same environment variables as the API.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .db import SessionLocal, init_db
from .crud import seed_locations
from .ingestion import ForecastIngestionService
from .settings import MissingAPIKeyError, settings

logger = logging.getLogger("floodwatch")


def cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    print("Database tables ready.")
    return 0


def cmd_seed(args: argparse.Namespace) -> int:
    init_db()
    db = SessionLocal()
    try:
        locations = seed_locations(db)
    finally:
        db.close()
    print(f"Seeded {len(locations)} location(s).")
    return 0


def cmd_fetch_forecasts(args: argparse.Namespace) -> int:
    """Fetch latest forecasts from OpenWeather and derive alerts."""
    init_db()
    print("Fetching forecasts...")

    db = SessionLocal()
    try:
        results = asyncio.run(ForecastIngestionService(db, settings).ingest())
    except MissingAPIKeyError as e:
        logger.error("%s", e)
        return 1
    finally:
        db.close()

    for result in results:
        if result.status == "ok":
            print(f"Location {result.location_id}: stored forecast {result.forecast_id}; alerts created {result.alerts_created}")
        else:
            print(f"Location {result.location_id}: {result.message}", file=sys.stderr)

    print("Done.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="floodwatch", description="Floodwatch forecast ingestion and maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables").set_defaults(func=cmd_init_db)
    sub.add_parser("seed", help="Upsert the default tracked locations").set_defaults(func=cmd_seed)
    sub.add_parser(
        "fetch-forecasts", help="Fetch latest forecasts from OpenWeather and derive alerts"
    ).set_defaults(func=cmd_fetch_forecasts)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
