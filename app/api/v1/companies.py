"""
Company context endpoints: switcher options, active context, capabilities.

Follows Layer 2 and Layer 4 rules:
- Company and role always come from the resolver, never from the client body
- All per-company queries are scoped by the resolved company id
"""
from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from core.auth import SessionUser, session_required
from core.errors import ActiveCompanyContextError, context_http_error
from core.roles import AppModule, has_attendance_sensitive_access, has_module_access
from domain.models import ActiveCompanyContext, UserCompanyOption
from api.v1.deps import company_context_required, get_resolver
from services.active_company_service import ActiveCompanyResolver

router = APIRouter(prefix="/api/v1/companies", tags=["companies"])


class CompanyOptionsOut(BaseModel):
    items: list[UserCompanyOption]


class CapabilitiesOut(BaseModel):
    company_id: str
    company_role: Optional[str]
    modules: dict[str, bool]
    attendance_sensitive: bool


@router.get("", response_model=CompanyOptionsOut)
def list_companies(
    user: SessionUser = Depends(session_required),
    resolver: ActiveCompanyResolver = Depends(get_resolver),
) -> dict:
    """Companies the caller can switch to (default first, then by name)."""
    return {"items": resolver.company_options(user.user_id)}


@router.get("/active", response_model=ActiveCompanyContext)
def active_company(
    company_id: Optional[str] = Query(default=None, description="Explicitly requested company"),
    user: SessionUser = Depends(session_required),
    resolver: ActiveCompanyResolver = Depends(get_resolver),
) -> ActiveCompanyContext:
    """
    Resolve the active company for the caller.

    Precedence: `company_id` query > persisted selection > session default,
    falling back to the caller's best active grant.

    Raises:
        HTTPException: 403 when the caller has no usable company
    """
    try:
        return resolver.resolve(user, company_id)
    except ActiveCompanyContextError as exc:
        raise context_http_error(exc)


@router.get("/{company_id}/capabilities", response_model=CapabilitiesOut)
def capabilities(context: ActiveCompanyContext = Depends(company_context_required)) -> dict:
    """Module access map and sensitive-attendance flag for the caller's role."""
    role = context.company_role
    return {
        "company_id": context.company_id,
        "company_role": role.value if role else None,
        "modules": {module.value: has_module_access(role, module) for module in AppModule},
        "attendance_sensitive": has_attendance_sensitive_access(role),
    }
