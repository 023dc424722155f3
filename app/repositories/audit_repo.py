"""
Repository for the audit trail.

Rows are appended inside the caller's transaction; the caller commits.
"""
from __future__ import annotations
from typing import Any, Optional
from sqlalchemy.orm import Session
from domain.sqlalchemy_models import AuditLog


def field_change(field_name: str, old_value: Any, new_value: Any) -> dict:
    return {
        "field_name": field_name,
        "old_value": None if old_value is None else str(old_value),
        "new_value": None if new_value is None else str(new_value),
    }


def create_audit_log(
    db: Session,
    *,
    table_name: str,
    record_id: str,
    action: str,
    reason: str,
    changes: list[dict],
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    entry = AuditLog(
        table_name=table_name,
        record_id=record_id,
        action=action,
        user_id=user_id,
        reason=reason,
        changes=changes,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    return entry
