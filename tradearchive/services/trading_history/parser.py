"""
Extraction of trading rows from the exchange's daily price report page.

The report table has no semantic markers, so rows and columns are addressed by
position. Everything position-dependent lives in TableLayout; a change in the
upstream layout should only need a different layout, not different code.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterator, List, NamedTuple, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from tradearchive.core.config import settings
from tradearchive.core.exceptions import ReportParseError

logger = logging.getLogger(__name__)

NBSP = "\u00a0"


class RawTradingRow(NamedTuple):
    """Typed cells of one data row, before reference resolution."""
    security_name: str
    total_trades: int = 0
    high_price: float = 0.0
    low_price: float = 0.0
    close_price: float = 0.0
    total_traded_quantity: float = 0.0
    total_traded_value: float = 0.0
    previous_day_close_price: float = 0.0


def parse_text(text: str) -> str:
    return " ".join(text.split())


def parse_int(text: str) -> int:
    """Parse an integer cell, 0 when the cell is not a plain integer."""
    try:
        return int(text.replace(",", "").strip())
    except ValueError:
        return 0


def parse_float(text: str) -> float:
    """Parse a decimal cell, 0.0 when the cell is not numeric."""
    try:
        return float(text.replace(",", "").strip())
    except ValueError:
        return 0.0


@dataclass(frozen=True)
class ColumnSpec:
    index: int
    field: str
    convert: Callable[[str], object]


DEFAULT_COLUMNS: Tuple[ColumnSpec, ...] = (
    ColumnSpec(1, "security_name", parse_text),
    ColumnSpec(2, "total_trades", parse_int),
    ColumnSpec(3, "high_price", parse_float),
    ColumnSpec(4, "low_price", parse_float),
    ColumnSpec(5, "close_price", parse_float),
    ColumnSpec(6, "total_traded_quantity", parse_float),
    ColumnSpec(7, "total_traded_value", parse_float),
    ColumnSpec(8, "previous_day_close_price", parse_float),
)


@dataclass(frozen=True)
class TableLayout:
    """Where the report table, its metadata and its data rows are."""
    table_selector: str = ".table.table-condensed.table-hover"
    metadata_selector: str = ".pull-left"
    metadata_prefix: str = "As of "
    header_rows: int = 2
    footer_rows: int = 4
    columns: Tuple[ColumnSpec, ...] = DEFAULT_COLUMNS

    def __post_init__(self) -> None:
        if self.header_rows < 1:
            # row 0 carries the business date
            raise ValueError("header_rows must include the metadata row")
        if self.footer_rows < 0:
            raise ValueError("footer_rows must be non-negative")
        unknown = {c.field for c in self.columns} - set(RawTradingRow._fields)
        if unknown:
            raise ValueError(f"Unknown column fields: {sorted(unknown)}")
        if "security_name" not in {c.field for c in self.columns}:
            raise ValueError("Layout must map a security_name column")

    @classmethod
    def from_settings(cls) -> "TableLayout":
        return cls(
            table_selector=settings.REPORT_TABLE_SELECTOR,
            header_rows=settings.REPORT_HEADER_ROWS,
            footer_rows=settings.REPORT_FOOTER_ROWS,
        )

    def data_window(self, row_count: int) -> range:
        """Indexes of rows that may hold trading data."""
        return range(self.header_rows, max(row_count - self.footer_rows, self.header_rows))


DEFAULT_LAYOUT = TableLayout()


@dataclass
class ReportPage:
    """
    One parsed report page.

    rows is a one-pass iterator; every row it yields belongs to business_date.
    """
    business_date: date
    last_updated_time: str
    rows: Iterator[RawTradingRow]


def parse_report(html: str, layout: TableLayout = DEFAULT_LAYOUT) -> ReportPage:
    """
    Parse a report page.

    Raises ReportParseError when the table is missing or its metadata row does
    not carry a readable business date.
    """
    soup = BeautifulSoup(html, "html.parser")
    table = soup.select_one(layout.table_selector)
    if table is None:
        raise ReportParseError(f"Report table {layout.table_selector!r} not found")

    rows = _table_rows(table)
    if not rows:
        raise ReportParseError("Report table has no rows")

    business_date, last_updated_time = parse_metadata_row(rows[0], layout)
    return ReportPage(
        business_date=business_date,
        last_updated_time=last_updated_time,
        rows=_iter_data_rows(rows, layout),
    )


def parse_metadata_row(row: Tag, layout: TableLayout = DEFAULT_LAYOUT) -> Tuple[date, str]:
    """Split 'As of <date>&nbsp;<time>' into the business date and time token."""
    holder = row.select_one(layout.metadata_selector) if layout.metadata_selector else None
    text = (holder if holder is not None else row).get_text().strip()
    if text.startswith(layout.metadata_prefix):
        text = text[len(layout.metadata_prefix):]

    separator = NBSP if NBSP in text else None
    parts = [part.strip() for part in text.split(separator) if part.strip()]
    if not parts:
        raise ReportParseError("Report metadata row is empty")

    try:
        business_date = datetime.strptime(parts[0], "%Y-%m-%d").date()
    except ValueError as exc:
        raise ReportParseError(f"Unreadable business date {parts[0]!r} in metadata row") from exc

    return business_date, parts[1] if len(parts) > 1 else ""


def _table_rows(table: Tag) -> List[Tag]:
    body = table if table.name == "tbody" else table.find("tbody")
    container = body if body is not None else table
    return container.find_all("tr", recursive=False)


def _iter_data_rows(rows: List[Tag], layout: TableLayout) -> Iterator[RawTradingRow]:
    for index in layout.data_window(len(rows)):
        row = _convert_row(rows[index], layout)
        if not row.security_name:
            logger.debug("Skipping row %s without a security name", index)
            continue
        yield row


def _convert_row(row: Tag, layout: TableLayout) -> RawTradingRow:
    cells = row.find_all("td", recursive=False)
    values = {}
    for column in layout.columns:
        text = cells[column.index].get_text() if column.index < len(cells) else ""
        values[column.field] = column.convert(text)
    return RawTradingRow(**values)
