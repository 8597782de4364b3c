"""
Metrics emission system for observability.

Provides structured metrics for:
- Report pages fetched, parsed and written
- Fetch and write failures
- Run completion

Metrics are emitted to:
1. Python logging (immediate visibility)
2. Redis stream (real-time consumers)
3. In-memory buffer (run summaries)
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

logger = logging.getLogger(__name__)


@dataclass
class MetricEvent:
    """Structured metric event."""
    timestamp: datetime
    category: str          # "fetch", "page", "write", "run"
    event_type: str        # "ingested", "failed", etc.
    report_date: Optional[str]
    value: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category,
            "event_type": self.event_type,
            "report_date": self.report_date,
            "value": self.value,
            "metadata": self.metadata
        }


class MetricsEmitter:
    """
    Emit structured metrics to multiple destinations.

    Safe to share between the fetch workers of one event loop.
    """

    # Category constants
    CATEGORY_FETCH = "fetch"
    CATEGORY_PAGE = "page"
    CATEGORY_WRITE = "write"
    CATEGORY_RUN = "run"

    STREAM_NAME = "metrics"

    def __init__(self, redis_client=None, buffer_size: int = 1000):
        """
        Initialize metrics emitter.

        Args:
            redis_client: Optional Redis client for stream publishing
            buffer_size: Max events to keep in memory buffer
        """
        self.redis = redis_client
        self.buffer_size = buffer_size
        self._buffer: List[MetricEvent] = []
        self._enabled = True

    def set_redis(self, redis_client) -> None:
        """Set Redis client (for lazy initialization)."""
        self.redis = redis_client

    def enable(self) -> None:
        """Enable metrics emission."""
        self._enabled = True

    def disable(self) -> None:
        """Disable metrics emission (for testing)."""
        self._enabled = False

    def emit(
        self,
        category: str,
        event_type: str,
        value: float,
        report_date: str = None,
        metadata: dict = None
    ) -> Optional[MetricEvent]:
        """
        Emit a metric event.

        Args:
            category: Event category (fetch, page, write, run)
            event_type: Specific event type within category
            value: Numeric value (row count, attempt count, ...)
            report_date: Optional business or request date the event refers to
            metadata: Additional context as key-value pairs

        Returns:
            The emitted MetricEvent
        """
        if not self._enabled:
            return None

        event = MetricEvent(
            timestamp=datetime.now(timezone.utc),
            category=category,
            event_type=event_type,
            report_date=report_date,
            value=value,
            metadata=metadata or {}
        )

        meta_str = f" {metadata}" if metadata else ""
        logger.debug(
            f"METRIC [{category}/{event_type}] "
            f"date={report_date} value={value}{meta_str}"
        )

        self._buffer.append(event)
        if len(self._buffer) > self.buffer_size:
            self._buffer = self._buffer[-self.buffer_size:]

        if self.redis:
            try:
                self.redis.xadd(self.STREAM_NAME, {
                    "data": json.dumps(event.to_dict())
                })
            except Exception as e:
                logger.warning(f"Failed to publish metric to Redis: {e}")

        return event

    # =========================================================================
    # Convenience methods for ingestion metrics
    # =========================================================================

    def page_ingested(self, report_date: str, business_date: str, written: int,
                      failed: int, duration_ms: float) -> MetricEvent:
        """Record a report page whose rows were all attempted."""
        return self.emit(
            self.CATEGORY_PAGE, "ingested", written,
            report_date=report_date,
            metadata={
                "business_date": business_date,
                "failed": failed,
                "duration_ms": round(duration_ms, 2)
            }
        )

    def page_skipped(self, report_date: str, reason: str) -> MetricEvent:
        """Record a page that produced no rows."""
        return self.emit(
            self.CATEGORY_PAGE, "skipped", 0,
            report_date=report_date,
            metadata={"reason": reason}
        )

    def fetch_failed(self, report_date: str, url: str, attempts: int,
                     status_code: Optional[int] = None) -> MetricEvent:
        """Record a fetch that exhausted its retries."""
        return self.emit(
            self.CATEGORY_FETCH, "failed", attempts,
            report_date=report_date,
            metadata={"url": url, "status_code": status_code}
        )

    def row_write_failed(self, business_date: str, security_name: str,
                         error: str) -> MetricEvent:
        """Record a single trading record that could not be upserted."""
        return self.emit(
            self.CATEGORY_WRITE, "failed", 1,
            report_date=business_date,
            metadata={"security_name": security_name, "error": error}
        )

    def run_completed(self, status: str, completed: int, failed: int,
                      rows_written: int, duration_ms: float) -> MetricEvent:
        """Record the end of an ingestion run."""
        return self.emit(
            self.CATEGORY_RUN, status, rows_written,
            metadata={
                "completed_dates": completed,
                "failed_dates": failed,
                "duration_ms": round(duration_ms, 2)
            }
        )

    # =========================================================================
    # Aggregation methods
    # =========================================================================

    def get_buffer(self) -> List[MetricEvent]:
        """Get buffered events."""
        return list(self._buffer)

    def get_summary(self, hours: int = 24) -> dict:
        """
        Get aggregated summary of recent metrics.

        Args:
            hours: How many hours of data to include

        Returns:
            Dictionary with aggregated metrics
        """
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        recent = [e for e in self._buffer if e.timestamp >= cutoff]

        by_category: Dict[str, int] = {}
        by_event: Dict[str, int] = {}
        rows_written = 0

        for event in recent:
            by_category[event.category] = by_category.get(event.category, 0) + 1
            key = f"{event.category}/{event.event_type}"
            by_event[key] = by_event.get(key, 0) + 1
            if key == "page/ingested":
                rows_written += int(event.value)

        return {
            "period_hours": hours,
            "total_events": len(recent),
            "by_category": by_category,
            "by_event": by_event,
            "pages_ingested": by_event.get("page/ingested", 0),
            "pages_skipped": by_event.get("page/skipped", 0),
            "fetch_failures": by_event.get("fetch/failed", 0),
            "write_failures": by_event.get("write/failed", 0),
            "rows_written": rows_written,
        }

    def clear_buffer(self) -> int:
        """Clear buffer and return count of cleared events."""
        count = len(self._buffer)
        self._buffer = []
        return count


# Global singleton instance
metrics = MetricsEmitter()
