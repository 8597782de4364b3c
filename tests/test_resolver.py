from datetime import date

from tradearchive.services.company_service import CompanyDirectory, CompanyRef
from tradearchive.services.trading_history.parser import RawTradingRow, ReportPage
from tradearchive.services.trading_history.resolver import RecordResolver


def _page(rows=()):
    return ReportPage(business_date=date(2021, 6, 24), last_updated_time="15:00", rows=iter(rows))


ABC = RawTradingRow(
    security_name="ABC Bank Ltd.",
    total_trades=120,
    high_price=505.0,
    low_price=495.0,
    close_price=500.0,
    total_traded_quantity=10000,
    total_traded_value=5000000,
    previous_day_close_price=498.0,
)


def test_match_populates_symbol_and_id():
    directory = CompanyDirectory([CompanyRef(id=1, symbol="ABC", security_name="ABC Bank Ltd.", active_status="A")])
    record = RecordResolver(directory).resolve(ABC, _page())

    assert record.symbol == "ABC"
    assert record.security_id == 1
    assert record.business_date == date(2021, 6, 24)
    assert record.last_updated_time == "15:00"
    assert record.close_price == 500.0
    assert record.total_trades == 120
    assert record.natural_key == (date(2021, 6, 24), "ABC", "ABC Bank Ltd.")


def test_miss_keeps_record_with_empty_identity():
    record = RecordResolver(CompanyDirectory([])).resolve(ABC, _page())

    assert record.symbol == ""
    assert record.security_id == 0
    assert not record.is_resolved
    assert record.security_name == "ABC Bank Ltd."
    assert record.market_capitalization == 0.0


def test_duplicate_security_names_prefer_active_then_lowest_id():
    directory = CompanyDirectory([
        CompanyRef(id=3, symbol="ABCD", security_name="ABC Bank Ltd.", active_status="D"),
        CompanyRef(id=9, symbol="ABC2", security_name="ABC Bank Ltd.", active_status="A"),
        CompanyRef(id=5, symbol="ABC", security_name="ABC Bank Ltd.", active_status="A"),
    ])
    record = RecordResolver(directory).resolve(ABC, _page())
    assert (record.symbol, record.security_id) == ("ABC", 5)


def test_lookup_ignores_whitespace_differences():
    directory = CompanyDirectory([CompanyRef(id=1, symbol="ABC", security_name="ABC  Bank Ltd. ")])
    assert directory.lookup("ABC Bank Ltd.").symbol == "ABC"
    assert directory.lookup("abc bank ltd.") is None
    assert len(directory) == 1
