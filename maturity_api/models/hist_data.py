"""Time tracking model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text
from maturity_api.database import Base


class HistData(Base):
    """Hours a consultant logged against a client on a given day."""
    __tablename__ = "hist_data"

    id = Column(Integer, primary_key=True)
    source = Column(String)
    year = Column(Integer, nullable=False)
    month_no = Column(Integer, nullable=False)
    day = Column(Integer)
    month = Column(String)
    consultant_id = Column(Integer)
    consultant = Column(String, nullable=False, index=True)
    client = Column(String, nullable=False)
    activity_type = Column(String)
    working_hours = Column(Numeric(6, 2, asdecimal=False), nullable=False)
    notes = Column(Text)
    domain = Column(String)
    subdomain = Column(String)
    scope = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
