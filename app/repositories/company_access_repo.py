"""
Repository for user/company access grants.

Follows Layer 4 rules:
- All grant queries are user-scoped or company-scoped, never global
- Data access MUST be routed through repository layer
- No raw queries inside API routes
- Grant ordering is deterministic: is_default desc, created_at asc
"""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import select, update
from sqlalchemy.orm import Session
from domain.sqlalchemy_models import Company, User, UserCompanyAccess

_GRANT_ORDER = (
    UserCompanyAccess.is_default.desc(),
    UserCompanyAccess.created_at.asc(),
    UserCompanyAccess.id.asc(),
)


def find_active_grant(db: Session, user_id: str, company_id: Optional[str] = None) -> Optional[UserCompanyAccess]:
    """
    Best active grant of a user, optionally restricted to one company.

    The grant's company is loaded but NOT filtered on; callers decide what an
    inactive company means.

    Args:
        db: Database session
        user_id: User identifier
        company_id: Restrict to this company when given

    Returns:
        The first grant by (is_default desc, created_at asc), or None
    """
    stmt = (
        select(UserCompanyAccess)
        .join(UserCompanyAccess.company)
        .where(UserCompanyAccess.user_id == user_id, UserCompanyAccess.is_active.is_(True))
    )
    if company_id:
        stmt = stmt.where(UserCompanyAccess.company_id == company_id)
    return db.scalars(stmt.order_by(*_GRANT_ORDER).limit(1)).first()


def find_usable_grant(db: Session, user_id: str, company_id: str) -> Optional[UserCompanyAccess]:
    """Active grant for exactly (user, company) whose company is active too."""
    stmt = (
        select(UserCompanyAccess)
        .join(UserCompanyAccess.company)
        .where(
            UserCompanyAccess.user_id == user_id,
            UserCompanyAccess.company_id == company_id,
            UserCompanyAccess.is_active.is_(True),
            Company.is_active.is_(True),
        )
        .order_by(*_GRANT_ORDER)
        .limit(1)
    )
    return db.scalars(stmt).first()


def list_usable_grants(db: Session, user_id: str) -> list[UserCompanyAccess]:
    stmt = (
        select(UserCompanyAccess)
        .join(UserCompanyAccess.company)
        .where(
            UserCompanyAccess.user_id == user_id,
            UserCompanyAccess.is_active.is_(True),
            Company.is_active.is_(True),
        )
        .order_by(UserCompanyAccess.is_default.desc(), Company.name.asc())
    )
    return list(db.scalars(stmt).all())


def get_selected_company_id(db: Session, user_id: str) -> Optional[str]:
    return db.scalar(select(User.selected_company_id).where(User.id == user_id))


def set_selected_company(db: Session, user_id: str, company_id: str, switched_at: datetime) -> None:
    db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            selected_company_id=company_id,
            last_company_switched_at=switched_at,
            updated_at=switched_at,
        )
    )


def list_company_members(db: Session, company_id: str, limit: int, offset: int) -> list[tuple[User, UserCompanyAccess]]:
    """Active members of a company with their grant, ordered by name then email."""
    stmt = (
        select(User, UserCompanyAccess)
        .join(UserCompanyAccess, UserCompanyAccess.user_id == User.id)
        .where(
            UserCompanyAccess.company_id == company_id,
            UserCompanyAccess.is_active.is_(True),
        )
        .order_by(User.last_name.asc(), User.first_name.asc(), User.email.asc())
        .limit(limit)
        .offset(offset)
    )
    return [(user, grant) for user, grant in db.execute(stmt).all()]
