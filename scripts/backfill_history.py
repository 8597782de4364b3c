#!/usr/bin/env python3
"""
Backfill historical trading records from the exchange's daily report pages.

Usage:
    python scripts/backfill_history.py [--start-date 2021-06-24] [--days 3800] [--resume]
"""

import asyncio
import logging
import os
import sys
from datetime import date
from argparse import ArgumentParser

# Add repository root to path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from tradearchive.core.config import settings
from tradearchive.core.database import init_models
from tradearchive.core.logging import setup_logging
from tradearchive.services.history_ingest_service import (
    DEFAULT_JOB_NAME,
    HistoryIngestService,
    IngestRunResult,
)
from tradearchive.services.trading_history.fetcher import ReportFetcher
from tradearchive.services.watermark_service import IngestWatermarkService

logger = logging.getLogger(__name__)


async def backfill_history(
    start_date: date,
    days: int,
    workers: int,
    delay: float,
    jitter: float,
    timeout: float,
    load_companies: bool = True,
    resume: bool = False,
) -> IngestRunResult:
    """Backfill trading history backward from start_date."""
    await init_models()

    watermarks = IngestWatermarkService()
    run_start, run_days = start_date, days
    if resume:
        run_start, run_days = await watermarks.resume_window(
            DEFAULT_JOB_NAME, start_date, days
        )

    logger.info(f"Backfilling {run_days} days from {run_start} (anchor {start_date})")

    fetcher = ReportFetcher(
        worker_count=workers,
        request_delay_sec=delay,
        jitter_sec=jitter,
        timeout_sec=timeout,
    )
    service = HistoryIngestService(fetcher=fetcher, watermarks=watermarks)
    return await service.run(
        run_start,
        run_days,
        load_companies=load_companies,
        anchor_date=start_date,
    )


def main():
    parser = ArgumentParser(description="Backfill historical trading records")
    parser.add_argument(
        "--start-date",
        type=date.fromisoformat,
        default=settings.HISTORY_START_DATE or date.today(),
        help="Most recent report date to fetch (default: today)"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.HISTORY_DAY_COUNT,
        help=f"Number of days to fetch backward (default: {settings.HISTORY_DAY_COUNT})"
    )
    parser.add_argument("--workers", type=int, default=settings.FETCH_WORKER_COUNT)
    parser.add_argument("--delay", type=float, default=settings.FETCH_REQUEST_DELAY_SEC)
    parser.add_argument("--jitter", type=float, default=settings.FETCH_REQUEST_JITTER_SEC)
    parser.add_argument("--timeout", type=float, default=settings.FETCH_REQUEST_TIMEOUT_SEC)
    parser.add_argument(
        "--skip-company-load",
        action="store_true",
        help="Use the companies already in the database instead of reloading the feed"
    )
    parser.add_argument(
        "--resume",
        action="store_true",
        help="Skip days a previous run with the same start date already completed"
    )
    args = parser.parse_args()

    setup_logging()
    result = asyncio.run(backfill_history(
        start_date=args.start_date,
        days=args.days,
        workers=args.workers,
        delay=args.delay,
        jitter=args.jitter,
        timeout=args.timeout,
        load_companies=not args.skip_company_load,
        resume=args.resume,
    ))

    if result.ok:
        logger.info(f"✓ Backfill completed: {result.rows_written} records over {len(result.completed_dates)} days")
        sys.exit(0)
    else:
        logger.error(f"✗ Backfill failed: {result.to_dict()}")
        sys.exit(1)


if __name__ == "__main__":
    main()
