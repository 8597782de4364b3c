from tradearchive.services.trading_history.dates import FetchTarget, generate_fetch_targets
from tradearchive.services.trading_history.fetcher import FetchOutcome, ReportFetcher
from tradearchive.services.trading_history.parser import (
    DEFAULT_LAYOUT,
    RawTradingRow,
    ReportPage,
    TableLayout,
    parse_report,
)
from tradearchive.services.trading_history.resolver import RecordResolver, TradingRecord
from tradearchive.services.trading_history.writer import StockRecordWriter

__all__ = [
    "FetchTarget",
    "generate_fetch_targets",
    "FetchOutcome",
    "ReportFetcher",
    "DEFAULT_LAYOUT",
    "RawTradingRow",
    "ReportPage",
    "TableLayout",
    "parse_report",
    "RecordResolver",
    "TradingRecord",
    "StockRecordWriter",
]
