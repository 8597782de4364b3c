"""Shared fixtures: a throwaway SQLite store and report page builders."""

from datetime import date
from typing import Iterable, List, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from tradearchive.core.database import init_models
from tradearchive.core.metrics import MetricsEmitter

COLUMN_TITLES = [
    "S.N.", "Traded Companies", "No. Of Transaction", "Max Price", "Min Price",
    "Closing Price", "Traded Shares", "Amount", "Previous Closing", "Difference Rs.",
]


def build_report_html(
    business_date: str = "2021-06-24",
    last_updated: str = "15:00:00",
    rows: Iterable[Sequence[str]] = (),
    footer_rows: int = 4,
    with_tbody: bool = True,
    metadata_text: Optional[str] = None,
) -> str:
    """Render a page shaped like the exchange's today's-price report."""
    meta = metadata_text if metadata_text is not None else f"As of {business_date}&nbsp;{last_updated}"
    body: List[str] = [
        f'<tr><td colspan="10"><label class="pull-left">{meta}</label></td></tr>',
        "<tr>" + "".join(f"<td>{title}</td>" for title in COLUMN_TITLES) + "</tr>",
    ]
    for n, cells in enumerate(rows, start=1):
        body.append("<tr>" + f"<td>{n}</td>" + "".join(f"<td>{c}</td>" for c in cells) + "</tr>")
    footer = [
        '<tr><td colspan="10">Total Amount Rs: 5,000,000.00</td></tr>',
        '<tr><td>Total</td><td>Footer Company Ltd.</td><td>999</td></tr>',
        '<tr><td colspan="10">Total Quantity: 10000</td></tr>',
        '<tr><td colspan="10"><ul class="pager"><li>1</li></ul></td></tr>',
    ]
    body.extend(footer[:footer_rows])

    inner = "".join(body)
    if with_tbody:
        inner = f"<tbody>{inner}</tbody>"
    return (
        "<html><body><div class='container'>"
        "<table class=\"table table-condensed table-hover\">"
        f"{inner}"
        "</table></div></body></html>"
    )


ABC_ROW = ["ABC Bank Ltd.", "120", "505.0", "495.0", "500.0", "10000", "5000000", "498.0", "2.0"]


@pytest.fixture
def report_html():
    return build_report_html


@pytest.fixture
def abc_row():
    return list(ABC_ROW)


@pytest.fixture
def metrics_emitter():
    return MetricsEmitter()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'archive.db'}",
        connect_args={"timeout": 30},
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
def report_date():
    return date(2021, 6, 24)
