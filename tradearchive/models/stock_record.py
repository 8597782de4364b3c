from sqlalchemy import Column, String, Date, Numeric, Integer, UniqueConstraint
from tradearchive.core.database import Base
from tradearchive.models.base import IdMixin, SoftDeleteMixin, TimestampMixin

NATURAL_KEY = ("business_date", "symbol", "security_name")


class StockRecord(Base, IdMixin, TimestampMixin, SoftDeleteMixin):
    """
    One security's trading summary for one business date.
    At most one row per (business_date, symbol, security_name).
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY, name="uq_stock_records_date_symbol_name"),
    )

    remote_id = Column(String(64))
    business_date = Column(Date, nullable=False, index=True)
    last_updated_time = Column(String(20), nullable=False, default="")
    security_id = Column(Integer, nullable=False, default=0)
    symbol = Column(String(20), nullable=False, default="", index=True)
    security_name = Column(String(255), nullable=False)
    open_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    high_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    low_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    close_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    previous_day_close_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    total_traded_quantity = Column(Numeric(20, 4, asdecimal=False), nullable=False, default=0)
    total_traded_value = Column(Numeric(20, 4, asdecimal=False), nullable=False, default=0)
    total_trades = Column(Integer, nullable=False, default=0)
    fifty_two_week_high = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    fifty_two_week_low = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    last_updated_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    average_traded_price = Column(Numeric(14, 4, asdecimal=False), nullable=False, default=0)
    market_capitalization = Column(Numeric(24, 4, asdecimal=False), nullable=False, default=0)
