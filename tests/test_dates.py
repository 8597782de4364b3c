from datetime import date, timedelta

import pytest

from tradearchive.services.trading_history.dates import (
    FetchTarget,
    build_report_url,
    format_report_date,
    generate_fetch_targets,
)


def test_generates_every_day_backward_from_start():
    start = date(2021, 6, 24)
    targets = generate_fetch_targets(start, 10, base_url="http://example.test")

    dates = [t.report_date for t in targets]
    assert dates == [start - timedelta(days=i) for i in range(10)]
    assert len(set(dates)) == 10
    assert all(a > b for a, b in zip(dates, dates[1:]))


def test_zero_days_yields_nothing():
    assert generate_fetch_targets(date(2021, 6, 24), 0) == []


def test_negative_day_count_rejected():
    with pytest.raises(ValueError):
        generate_fetch_targets(date(2021, 6, 24), -1)


def test_url_uses_unpadded_date_and_page_limit():
    url = build_report_url(date(2021, 6, 4), base_url="http://www.nepalstock.com/", page_limit=300)
    assert url == "http://www.nepalstock.com/todaysprice?startDate=2021-6-4&_limit=300"


def test_crosses_month_and_leap_day():
    targets = generate_fetch_targets(date(2020, 3, 1), 2, base_url="http://example.test")
    assert targets[1] == FetchTarget(
        report_date=date(2020, 2, 29),
        url="http://example.test/todaysprice?startDate=2020-2-29&_limit=300",
    )


def test_format_report_date():
    assert format_report_date(date(2009, 1, 9)) == "2009-1-9"
    assert format_report_date(date(2021, 12, 31)) == "2021-12-31"
