"""
SQLAlchemy models for the multi-tenant (company-scoped) access system.

Users reach companies through `user_company_access` grants; each grant carries
the user's role within that company. Grants and companies are soft-deactivated,
never deleted by this service.
"""
from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Boolean, Integer, ForeignKey, Text, JSON,
    DateTime, Index, UniqueConstraint, text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    System user.

    `selected_company_id` is the sticky company preference written by the
    company switcher; it is only a hint and is re-validated on every request.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, unique=True, nullable=True)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False, default="")
    last_name = Column(String, nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    selected_company_id = Column(String(36), ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    last_company_switched_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    company_access = relationship("UserCompanyAccess", back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"


class Company(Base):
    """Tenant boundary. Inactive companies can never be an active context."""
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    grants = relationship("UserCompanyAccess", back_populates="company")

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, code={self.code})>"


class UserCompanyAccess(Base):
    """
    Grant linking a user to a company with a role.

    One grant per (user, company) and at most one default grant per user.
    `role` holds a CompanyRole value; it is parsed with core.roles.parse_role
    wherever it is read.
    """
    __tablename__ = "user_company_access"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    company_id = Column(String(36), ForeignKey("companies.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(32), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_company_access"),
        Index(
            "uq_user_company_access_default",
            "user_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default"),
        ),
    )

    user = relationship("User", back_populates="company_access")
    company = relationship("Company", back_populates="grants", lazy="joined")

    def __repr__(self) -> str:
        return f"<UserCompanyAccess(user_id={self.user_id}, company_id={self.company_id}, role={self.role})>"


class AuditLog(Base):
    """Append-only audit trail for authentication and company-switch events."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_name = Column(String, nullable=False)
    record_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    user_id = Column(String(36), nullable=True)
    reason = Column(String, nullable=True)
    changes = Column(JSON, nullable=False, default=list)
    ip_address = Column(String, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<AuditLog(table={self.table_name}, record_id={self.record_id}, reason={self.reason})>"
