import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Optional, Tuple

from tradearchive.services.company_service import CompanyDirectory
from tradearchive.services.trading_history.parser import RawTradingRow, ReportPage

logger = logging.getLogger(__name__)


@dataclass
class TradingRecord:
    """A report row with its business date and reference identity attached."""
    business_date: date
    last_updated_time: str
    security_name: str
    symbol: str = ""
    security_id: int = 0
    open_price: float = 0.0
    high_price: float = 0.0
    low_price: float = 0.0
    close_price: float = 0.0
    previous_day_close_price: float = 0.0
    total_traded_quantity: float = 0.0
    total_traded_value: float = 0.0
    total_trades: int = 0
    fifty_two_week_high: float = 0.0
    fifty_two_week_low: float = 0.0
    last_updated_price: float = 0.0
    average_traded_price: float = 0.0
    market_capitalization: float = 0.0
    remote_id: Optional[str] = None

    @property
    def natural_key(self) -> Tuple[date, str, str]:
        return (self.business_date, self.symbol, self.security_name)

    @property
    def is_resolved(self) -> bool:
        return bool(self.symbol)

    def to_row(self) -> dict:
        return asdict(self)


class RecordResolver:
    """Attach the listed company's symbol and id to report rows."""

    def __init__(self, directory: CompanyDirectory):
        self.directory = directory

    def resolve(self, row: RawTradingRow, page: ReportPage) -> TradingRecord:
        """
        Build the record for one row of page.

        An unknown security name still yields a record, with an empty symbol
        and a zero security id.
        """
        record = TradingRecord(
            business_date=page.business_date,
            last_updated_time=page.last_updated_time,
            **row._asdict(),
        )

        company = self.directory.lookup(row.security_name)
        if company is None:
            logger.debug("No listed company named %r on %s", row.security_name, page.business_date)
            return record

        record.symbol = company.symbol
        record.security_id = company.id
        return record
