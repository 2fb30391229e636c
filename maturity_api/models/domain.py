"""Domain hierarchy model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from maturity_api.database import Base


class Domain(Base):
    """Top-level classification with bilingual names."""
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    name_ar = Column(String)
    description = Column(Text)
    description_ar = Column(Text)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)


class Subdomain(Base):
    """Second-level classification, optionally owned by a lead consultant."""
    __tablename__ = "subdomains"

    id = Column(Integer, primary_key=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    name_ar = Column(String)
    description = Column(Text)
    description_ar = Column(Text)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    lead_consultant = Column(String)  # username, not a foreign key
    created_at = Column(DateTime, default=datetime.now)


class Scope(Base):
    """Unit of work inside a subdomain that hours are logged against."""
    __tablename__ = "scopes"

    id = Column(Integer, primary_key=True)
    subdomain_id = Column(Integer, ForeignKey("subdomains.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    created_by = Column(String)
    created_at = Column(DateTime, default=datetime.now)


class Question(Base):
    """Assessment question attached to a subdomain."""
    __tablename__ = "questions"

    id = Column(String, primary_key=True)
    subdomain_id = Column(Integer, ForeignKey("subdomains.id"), index=True)
    text_en = Column(Text)
    text_ar = Column(Text)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
