"""Organization request model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String, Text
from maturity_api.database import Base

REQUEST_TYPES = ("dma", "consultation")
REQUEST_STATUSES = ("pending", "contacted", "in_progress", "completed", "rejected")


class OrganizationRequest(Base):
    """Lead captured from a prospective customer."""
    __tablename__ = "organization_requests"

    id = Column(Integer, primary_key=True)
    type = Column(String, nullable=False)
    organization_name = Column(String, nullable=False)
    organization_size = Column(String)
    contact_name = Column(String, nullable=False)
    contact_email = Column(String, nullable=False)
    contact_phone = Column(String)
    job_title = Column(String)
    industry = Column(String)
    country = Column(String)
    message = Column(Text)
    status = Column(String, default="pending")
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
