from sqlalchemy import Column, Date, String
from tradearchive.core.database import Base
from tradearchive.models.base import TimestampMixin

class IngestWatermark(Base, TimestampMixin):
    """
    Resume point for backward backfills.
    last_completed_date is the oldest date such that every date from
    anchor_date down to it was ingested successfully.
    """
    __tablename__ = "ingest_watermarks"

    job_name = Column(String(100), primary_key=True)
    anchor_date = Column(Date, nullable=False)
    last_completed_date = Column(Date, nullable=True)
