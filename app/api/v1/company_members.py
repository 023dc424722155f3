# app/api/v1/company_members.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from core.db import get_db
from core.roles import AppModule, parse_role
from domain.models import ActiveCompanyContext, CompanyMember
from api.v1.deps import require_module
from repositories.company_access_repo import list_company_members

router = APIRouter(prefix="/api/v1", tags=["team"])


@router.get("/companies/{company_id}/members")
def list_members(
    company_id: str,
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
    context: ActiveCompanyContext = Depends(require_module(AppModule.EMPLOYEES)),
    db: Session = Depends(get_db),
):
    # company_id was verified against the resolved context by the dependency
    offset = (page - 1) * size
    rows = list_company_members(db, context.company_id, size, offset)

    items = [
        CompanyMember(
            user_id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=parse_role(grant.role),
            is_default=bool(grant.is_default),
        )
        for user, grant in rows
    ]
    return {"items": items, "page": page, "size": size}
