from datetime import date
import asyncio
import logging

from tradearchive.core.config import settings
from tradearchive.core.redis import get_redis, StreamNames
from tradearchive.scheduler.celery_app import app
from tradearchive.services.history_ingest_service import HistoryIngestService, IngestRunResult

logger = logging.getLogger(__name__)


@app.task(name="tradearchive.tasks.trading_history.ingest_trading_history")
def ingest_trading_history(day_count: int | None = None) -> dict[str, object]:
    """
    Scheduled task to re-ingest the most recent report days.
    Runs after market close; earlier days are rewritten in place, so overlapping
    windows are harmless.
    """
    today = date.today()
    days = settings.INGEST_LOOKBACK_DAYS if day_count is None else day_count

    result = asyncio.run(_ingest_trading_history_async(today, days))
    summary = result.to_dict()

    if result.ok:
        logger.info(
            "Ingested %s trading records over %s report days",
            result.rows_written,
            len(result.completed_dates),
        )
        try:
            r = get_redis()
            r.xadd(StreamNames.TRADING_HISTORY, {
                "event_type": "batch_complete",
                "date": str(today),
                "days": str(days),
                "count": str(result.rows_written),
            })
        except Exception as e:
            logger.error("Failed to publish stream event: %s", e)
    else:
        logger.error("Trading history ingestion failed: %s", summary["failed"] or summary["error"])
        try:
            r = get_redis()
            r.xadd(StreamNames.ALERTS, {
                "level": "ERROR",
                "title": "Trading History Ingestion Failed",
                "message": f"{len(result.failed_dates)} report days failed",
            })
        except Exception as e:
            logger.error("Failed to publish alert: %s", e)

    return summary


async def _ingest_trading_history_async(start_date: date, day_count: int) -> IngestRunResult:
    service = HistoryIngestService()
    return await service.run(start_date, day_count)
