from sqlalchemy import Column, Integer, String
from tradearchive.core.database import Base
from tradearchive.models.base import SoftDeleteMixin, TimestampMixin

class Company(Base, TimestampMixin, SoftDeleteMixin):
    """
    Listed company reference data.
    Keyed by the exchange's own security id; security_name is the join key
    used when resolving report rows and is not guaranteed unique.
    """
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=False)
    symbol = Column(String(20), nullable=False, index=True)
    security_name = Column(String(255), nullable=False, index=True)
    name = Column(String(255))
    active_status = Column(String(10))
