import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from tradearchive.core.config import settings
from tradearchive.core.exceptions import FetchError, RecordWriteError, ReportParseError
from tradearchive.core.metrics import MetricsEmitter, metrics as default_metrics
from tradearchive.services.company_service import CompanyService
from tradearchive.services.trading_history.dates import FetchTarget, generate_fetch_targets
from tradearchive.services.trading_history.fetcher import ReportFetcher
from tradearchive.services.trading_history.parser import (
    RawTradingRow,
    ReportPage,
    TableLayout,
    parse_report,
)
from tradearchive.services.trading_history.resolver import RecordResolver
from tradearchive.services.trading_history.writer import StockRecordWriter
from tradearchive.services.watermark_service import IngestWatermarkService

logger = logging.getLogger(__name__)

DEFAULT_JOB_NAME = "trading_history_backfill"


@dataclass
class IngestRunResult:
    """Outcome of one ingestion run, keyed by the requested report dates."""
    start_date: date
    day_count: int
    completed_dates: List[date] = field(default_factory=list)
    empty_dates: List[date] = field(default_factory=list)
    skipped_dates: Dict[date, str] = field(default_factory=dict)
    failed_dates: Dict[date, str] = field(default_factory=dict)
    pending_dates: List[date] = field(default_factory=list)
    rows_written: int = 0
    rows_failed: int = 0
    rows_unresolved: int = 0
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    watermark: Optional[date] = None

    @property
    def ok(self) -> bool:
        return not self.failed_dates and self.error is None

    @property
    def status(self) -> str:
        return "completed" if self.ok else "failed"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "start_date": str(self.start_date),
            "day_count": self.day_count,
            "completed": len(self.completed_dates),
            "empty": len(self.empty_dates),
            "skipped": {str(d): reason for d, reason in self.skipped_dates.items()},
            "failed": {str(d): kind for d, kind in self.failed_dates.items()},
            "pending": len(self.pending_dates),
            "rows_written": self.rows_written,
            "rows_failed": self.rows_failed,
            "rows_unresolved": self.rows_unresolved,
            "error": self.error,
            "watermark": str(self.watermark) if self.watermark else None,
        }


class HistoryIngestService:
    """
    Run the trading history pipeline: load the company directory, fetch one
    report page per day backward from a start date, parse each page and upsert
    its rows concurrently, waiting for all of a page's writes before the page
    counts as done.
    """

    def __init__(
        self,
        company_service: CompanyService | None = None,
        fetcher: ReportFetcher | None = None,
        writer: StockRecordWriter | None = None,
        layout: TableLayout | None = None,
        watermarks: IngestWatermarkService | None = None,
        metrics_emitter: MetricsEmitter | None = None,
        base_url: str | None = None,
        page_limit: int | None = None,
        job_name: str = DEFAULT_JOB_NAME,
    ):
        self.metrics = metrics_emitter or default_metrics
        self.company_service = company_service or CompanyService()
        self.fetcher = fetcher or ReportFetcher()
        self.writer = writer or StockRecordWriter(metrics_emitter=self.metrics)
        self.layout = layout or TableLayout.from_settings()
        self.watermarks = watermarks
        self.base_url = base_url or settings.REPORT_BASE_URL
        self.page_limit = settings.REPORT_PAGE_LIMIT if page_limit is None else page_limit
        self.job_name = job_name

    async def run(
        self,
        start_date: date,
        day_count: int,
        load_companies: bool = True,
        anchor_date: date | None = None,
    ) -> IngestRunResult:
        """
        Ingest day_count report days ending at start_date.

        anchor_date is the start of the backfill this run belongs to; it differs
        from start_date only when resuming.
        """
        started = time.monotonic()
        result = IngestRunResult(start_date=start_date, day_count=day_count)
        logger.info("Starting trading history run: %s days back from %s", day_count, start_date)

        # Reference data must be in place before any row is resolved
        try:
            if load_companies:
                await self.company_service.load_from_feed()
            directory = await self.company_service.load_directory()
        except FetchError as exc:
            logger.error("Company reference load failed: %s", exc)
            result.error = f"{exc.error_kind}: {exc}"
            return self._finish(result, started)
        except SQLAlchemyError as exc:
            logger.error("Reference store unavailable: %s", exc)
            result.error = f"STORE_ERROR: {exc}"
            return self._finish(result, started)

        resolver = RecordResolver(directory)
        targets = generate_fetch_targets(
            start_date, day_count, base_url=self.base_url, page_limit=self.page_limit
        )

        async def handle_page(target: FetchTarget, html: str) -> None:
            await self.ingest_page(target, html, resolver, result)

        outcome = await self.fetcher.run(targets, handle_page)
        for failed_date, exc in outcome.failures.items():
            result.failed_dates[failed_date] = exc.error_kind
            if isinstance(exc, FetchError):
                self.metrics.fetch_failed(str(failed_date), exc.url, exc.attempts, exc.status_code)
        result.pending_dates.extend(outcome.pending)

        if self.watermarks is not None:
            result.watermark = await self.watermarks.record_run(
                self.job_name,
                anchor_date or start_date,
                start_date,
                result.completed_dates,
            )

        return self._finish(result, started)

    async def ingest_page(
        self,
        target: FetchTarget,
        html: str,
        resolver: RecordResolver,
        result: IngestRunResult,
    ) -> None:
        """
        Parse one fetched page and write all of its rows.

        Raises RecordWriteError when the page had rows and none could be
        written; the page then does not count as completed.
        """
        page_started = time.monotonic()
        try:
            page = parse_report(html, self.layout)
        except ReportParseError as exc:
            message = f"Skipped report page for {target.report_date}: {exc}"
            logger.warning(message)
            result.skipped_dates[target.report_date] = str(exc)
            result.warnings.append(message)
            self.metrics.page_skipped(str(target.report_date), str(exc))
            return

        if page.business_date != target.report_date:
            logger.debug(
                "Page requested for %s reports business date %s",
                target.report_date, page.business_date,
            )

        outcomes = await asyncio.gather(
            *(self._resolve_and_write(resolver, row, page) for row in page.rows)
        )
        if not outcomes:
            result.completed_dates.append(target.report_date)
            message = (
                f"No trading rows in report for {target.report_date} "
                f"(business date {page.business_date})"
            )
            logger.warning(message)
            result.empty_dates.append(target.report_date)
            result.warnings.append(message)
            self.metrics.page_skipped(str(target.report_date), "no rows")
            return

        written = sum(1 for ok, _ in outcomes if ok)
        failed = len(outcomes) - written
        unresolved = sum(1 for _, resolved in outcomes if not resolved)
        result.rows_written += written
        result.rows_failed += failed
        result.rows_unresolved += unresolved

        logger.info(
            "Wrote %s/%s rows for business date %s (requested %s, %s unresolved)",
            written, len(outcomes), page.business_date, target.report_date, unresolved,
        )
        self.metrics.page_ingested(
            str(target.report_date),
            str(page.business_date),
            written,
            failed,
            (time.monotonic() - page_started) * 1000,
        )

        if written == 0:
            raise RecordWriteError(
                f"None of {len(outcomes)} rows for {target.report_date} could be written",
                {"report_date": str(target.report_date)},
            )
        result.completed_dates.append(target.report_date)

    async def _resolve_and_write(
        self, resolver: RecordResolver, row: RawTradingRow, page: ReportPage
    ) -> Tuple[bool, bool]:
        record = resolver.resolve(row, page)
        ok = await self.writer.write(record)
        return ok, record.is_resolved

    def _finish(self, result: IngestRunResult, started: float) -> IngestRunResult:
        duration_ms = (time.monotonic() - started) * 1000
        self.metrics.run_completed(
            result.status,
            len(result.completed_dates),
            len(result.failed_dates),
            result.rows_written,
            duration_ms,
        )

        if result.ok:
            logger.info(
                "Trading history run completed: %s pages, %s rows written, %s failed",
                len(result.completed_dates), result.rows_written, result.rows_failed,
            )
        else:
            logger.error(
                "Trading history run failed: %s failed pages, %s pages never fetched%s",
                len(result.failed_dates),
                len(result.pending_dates),
                f", {result.error}" if result.error else "",
            )
        if result.skipped_dates:
            logger.warning("Pages skipped on parse errors: %s", len(result.skipped_dates))
        return result
