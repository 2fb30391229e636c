"""User model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from maturity_api.database import Base

ROLE_SUPER_USER = "super_user"
ROLE_ADMIN = "admin"
ROLE_LEAD_CONSULTANT = "lead_consultant"
ROLE_USER = "user"

ROLES = (ROLE_SUPER_USER, ROLE_ADMIN, ROLE_LEAD_CONSULTANT, ROLE_USER)
ADMIN_ROLES = (ROLE_SUPER_USER, ROLE_ADMIN, ROLE_LEAD_CONSULTANT)
MANAGER_ROLES = (ROLE_SUPER_USER, ROLE_ADMIN)


class User(Base):
    """Represents a staff account: console admin, consultant or super user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True)
    first_name = Column(String)
    last_name = Column(String)
    password_hash = Column(String)
    password_salt = Column(String)
    role = Column(String, default=ROLE_USER)
    profile_image = Column(String)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    last_login = Column(DateTime)


class UserDomain(Base):
    """Links a regular user to a domain they may log hours against."""
    __tablename__ = "user_domains"
    __table_args__ = (UniqueConstraint("user_id", "domain_id", name="uq_user_domains_user_domain"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=False)
