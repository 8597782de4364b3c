from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from tradearchive.core.config import settings

REPORT_PATH = "/todaysprice"


@dataclass(frozen=True)
class FetchTarget:
    """One report page to request."""
    report_date: date
    url: str


def format_report_date(day: date) -> str:
    """Format as the exchange expects: yyyy-M-d, month and day unpadded."""
    return f"{day.year}-{day.month}-{day.day}"


def build_report_url(day: date, base_url: str | None = None, page_limit: int | None = None) -> str:
    base = (base_url or settings.REPORT_BASE_URL).rstrip("/")
    limit = settings.REPORT_PAGE_LIMIT if page_limit is None else page_limit
    return f"{base}{REPORT_PATH}?startDate={format_report_date(day)}&_limit={limit}"


def generate_fetch_targets(
    start_date: date,
    day_count: int,
    base_url: str | None = None,
    page_limit: int | None = None,
) -> List[FetchTarget]:
    """
    Build fetch targets for start_date, start_date - 1, ..., start_date - (day_count - 1).

    Every calendar day is included once; weekends and holidays are requested
    like any other day since only the page content tells whether trading happened.
    """
    if day_count < 0:
        raise ValueError(f"day_count must be non-negative, got {day_count}")

    return [
        FetchTarget(
            report_date=day,
            url=build_report_url(day, base_url=base_url, page_limit=page_limit),
        )
        for day in (start_date - timedelta(days=offset) for offset in range(day_count))
    ]
