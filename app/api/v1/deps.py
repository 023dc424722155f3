"""
Shared FastAPI dependencies for company-scoped API routes.

The resolved context is passed explicitly to each handler; there is no
process-wide "current company".
"""
from __future__ import annotations
from typing import Callable
from fastapi import Depends
from sqlalchemy.orm import Session
from core.auth import SessionUser, session_required
from core.db import get_db
from core.errors import ActiveCompanyContextError, context_http_error
from core.roles import AppModule, ensure_module_access
from domain.models import ActiveCompanyContext
from services.active_company_service import ActiveCompanyResolver


def get_resolver(db: Session = Depends(get_db)) -> ActiveCompanyResolver:
    return ActiveCompanyResolver(db)


def company_context_required(
    company_id: str,
    user: SessionUser = Depends(session_required),
    resolver: ActiveCompanyResolver = Depends(get_resolver),
) -> ActiveCompanyContext:
    """
    Resolve the context for the `company_id` path parameter.

    Cross-tenant fallback is not acceptable for API calls: a request for
    company X answered from company Y is a 403. A user deactivated after
    sign-in (or left without usable grants) gets a 401 "invalid-session".
    """
    try:
        resolver.ensure_membership(user.user_id)
        context = resolver.resolve(user, company_id)
    except ActiveCompanyContextError as exc:
        raise context_http_error(exc)
    if context.company_id != company_id:
        raise context_http_error(ActiveCompanyContextError("No access to this company"))
    return context


def require_module(module: AppModule) -> Callable:
    """
    Guard that ensures the caller's role in the path company may use `module`.

    Example:
        @router.get("/companies/{company_id}/members")
        def members(ctx: ActiveCompanyContext = Depends(require_module(AppModule.EMPLOYEES))):
            ...
    """
    def _inner(context: ActiveCompanyContext = Depends(company_context_required)) -> ActiveCompanyContext:
        ensure_module_access(context.company_role, module, tenant_id=context.company_id)
        return context
    return _inner
