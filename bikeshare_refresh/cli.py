"""Refresh bikeshare stations whose data is stale.

Usage:
    refresh-stale-stations [--threshold-minutes N] [--batch-size N] [--dry-run]
    python -m bikeshare_refresh ...

Options default to STALE_THRESHOLD_MINUTES, BATCH_SIZE, DRY_RUN and
STALENESS_STRATEGY from the environment (or `.env`).

Exit codes: 0 on completion (including when nothing is stale), 1 when the
stale-network query fails, 2 when the configuration is invalid.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from pydantic import ValidationError

from bikeshare_refresh.core.errors import RefreshError
from bikeshare_refresh.core.logging import LOG_LEVELS, setup_logging

LOGGER = logging.getLogger("bikeshare_refresh.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_CONFIG = 2


def _int_at_least(minimum: int):
    def convert(value: str) -> int:
        number = int(value)
        if number < minimum:
            raise argparse.ArgumentTypeError(f"must be >= {minimum}")
        return number

    return convert


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="refresh-stale-stations",
        description="Refresh bikeshare station data for networks with stale stations.",
    )
    parser.add_argument(
        "--threshold-minutes",
        type=_int_at_least(0),
        default=None,
        help="Refresh networks whose oldest station is older than this",
    )
    parser.add_argument(
        "--batch-size",
        type=_int_at_least(1),
        default=None,
        help="Maximum number of networks to process",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Report what would be updated without writing",
    )
    parser.add_argument(
        "--strategy",
        choices=("scan", "aggregate"),
        default=None,
        help="How stale networks are computed",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Override LOG_LEVEL",
    )
    return parser.parse_args(argv)


async def run_refresh(args: argparse.Namespace):
    from bikeshare_refresh.core.db import AsyncSessionLocal, engine
    from bikeshare_refresh.services.refresh_service import RefreshService

    try:
        async with AsyncSessionLocal() as session:
            service = RefreshService(
                session,
                stale_threshold_minutes=args.threshold_minutes,
                batch_size=args.batch_size,
                dry_run=args.dry_run,
                staleness_strategy=args.strategy,
            )
            return await service.run()
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    # Settings are validated on first import.
    try:
        from bikeshare_refresh.core.config import settings
    except ValidationError as e:
        LOGGER.error("Invalid configuration: %s", e)
        return EXIT_BAD_CONFIG

    setup_logging(args.log_level or settings.log_level)

    try:
        asyncio.run(run_refresh(args))
    except RefreshError as e:
        LOGGER.error("Station refresh failed: %s", e)
        return EXIT_FAILED

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
