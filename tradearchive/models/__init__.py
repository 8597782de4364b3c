# Base
from tradearchive.models.base import TimestampMixin, IdMixin, SoftDeleteMixin

# Reference data
from tradearchive.models.company import Company

# Trading history
from tradearchive.models.stock_record import StockRecord
from tradearchive.models.ingest_watermark import IngestWatermark

__all__ = [
    "TimestampMixin",
    "IdMixin",
    "SoftDeleteMixin",
    "Company",
    "StockRecord",
    "IngestWatermark",
]
