"""Audit log model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text
from maturity_api.database import Base


class AuditLog(Base):
    """Append-only record of a visitor, participant or admin action."""
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True)
    user_type = Column(String)
    user_id = Column(String)
    action = Column(String, nullable=False, index=True)
    details = Column(Text)
    ip_address = Column(String)
    timestamp = Column(DateTime, default=datetime.now, index=True)
