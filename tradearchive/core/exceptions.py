"""
Ingestion error hierarchy.

Field-level parse failures and resolution misses are recovered where they occur
and never raised.
"""

from datetime import date
from typing import Any, Dict, Optional


class TradeArchiveError(Exception):
    """Base class for ingestion errors."""

    error_kind = "ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(TradeArchiveError):
    """Timeout, transport failure or non-success response for a report page."""

    error_kind = "FETCH_ERROR"

    def __init__(
        self,
        message: str,
        url: str,
        report_date: Optional[date] = None,
        status_code: Optional[int] = None,
        attempts: int = 1,
    ):
        super().__init__(
            message,
            {
                "url": url,
                "report_date": str(report_date) if report_date else None,
                "status_code": status_code,
                "attempts": attempts,
            },
        )
        self.url = url
        self.report_date = report_date
        self.status_code = status_code
        self.attempts = attempts


class ReportParseError(TradeArchiveError):
    """Report table missing or its metadata row malformed."""

    error_kind = "PARSE_ERROR"


class RecordWriteError(TradeArchiveError):
    """A trading record could not be upserted."""

    error_kind = "WRITE_ERROR"
