from datetime import date
from unittest.mock import AsyncMock, MagicMock, patch

from tradearchive.core.redis import StreamNames
from tradearchive.services.history_ingest_service import IngestRunResult
from tradearchive.tasks.trading_history import ingest_trading_history


def _patched(result):
    service = MagicMock()
    service.run = AsyncMock(return_value=result)
    redis = MagicMock()
    return (
        patch("tradearchive.tasks.trading_history.HistoryIngestService", return_value=service),
        patch("tradearchive.tasks.trading_history.get_redis", return_value=redis),
        service,
        redis,
    )


def test_successful_run_announces_batch():
    result = IngestRunResult(start_date=date.today(), day_count=2, completed_dates=[date.today()], rows_written=7)
    service_patch, redis_patch, service, redis = _patched(result)

    with service_patch, redis_patch:
        summary = ingest_trading_history(day_count=2)

    service.run.assert_awaited_once_with(date.today(), 2)
    assert summary["status"] == "completed"
    assert summary["rows_written"] == 7
    stream, fields = redis.xadd.call_args[0]
    assert stream == StreamNames.TRADING_HISTORY
    assert fields["count"] == "7"


def test_failed_run_raises_alert():
    result = IngestRunResult(start_date=date.today(), day_count=5, failed_dates={date.today(): "FETCH_ERROR"})
    service_patch, redis_patch, service, redis = _patched(result)

    with service_patch, redis_patch:
        summary = ingest_trading_history()

    assert summary["status"] == "failed"
    stream, fields = redis.xadd.call_args[0]
    assert stream == StreamNames.ALERTS
    assert fields["level"] == "ERROR"
