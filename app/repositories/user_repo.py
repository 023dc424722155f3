# app/repositories/user_repo.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from domain.sqlalchemy_models import User


def get_user_by_identifier(db: Session, identifier: str) -> Optional[User]:
    """Look a user up by email or username."""
    stmt = select(User).where(or_(User.email == identifier, User.username == identifier)).limit(1)
    return db.scalars(stmt).first()


def get_active_user(db: Session, user_id: str) -> Optional[User]:
    return db.scalars(select(User).where(User.id == user_id, User.is_active.is_(True))).first()


def mark_login(db: Session, user: User, at: datetime) -> Optional[datetime]:
    """Stamp last_login_at; returns the previous value for the audit trail."""
    previous = user.last_login_at
    user.last_login_at = at
    return previous
