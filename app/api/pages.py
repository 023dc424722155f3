"""
Navigable page routes.

Rendering is out of scope: pages answer with the JSON view model a template
would receive. Every page below the guard re-resolves the active company; a
page opened for one company but resolved to another redirects to the
canonical path instead of serving the other company's data. A user who was
deactivated, or lost every usable grant, is sent to logout.
"""
from __future__ import annotations
from typing import Optional, Union
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from core.config import settings
from core.db import get_db
from core.errors import ActiveCompanyContextError, NoSession
from core.guard import INVALID_SESSION_REDIRECT, LOGIN_PATH, login_redirect
from core.roles import has_attendance_sensitive_access, visible_modules
from core.routes import home_path_for
from domain.models import ActiveCompanyContext
from services.active_company_service import ActiveCompanyResolver
from services.auth_service import logout

router = APIRouter(tags=["pages"], include_in_schema=False)


def _safe_next(next_path: Optional[str]) -> Optional[str]:
    # Relative paths only; "//host" would leave the site.
    if next_path and next_path.startswith("/") and not next_path.startswith("//"):
        return next_path
    return None


def _page_context(
    request: Request, db: Session, company_id: str
) -> Union[ActiveCompanyContext, RedirectResponse]:
    user = getattr(request.state, "session_user", None)
    resolver = ActiveCompanyResolver(db)
    try:
        if user is not None:
            resolver.ensure_membership(user.user_id)
        context = resolver.resolve(user, company_id)
    except NoSession:
        return RedirectResponse(login_redirect(request.url.path, request.url.query), status_code=307)
    except ActiveCompanyContextError:
        # Deactivated user, no usable grant or inactive company: end the session.
        return RedirectResponse(INVALID_SESSION_REDIRECT, status_code=307)

    if context.company_id != company_id:
        return RedirectResponse(home_path_for(context.company_id, context.company_role), status_code=307)
    return context


@router.get("/")
def root():
    return RedirectResponse(LOGIN_PATH, status_code=307)


@router.get("/login")
def login_page(
    next: Optional[str] = Query(default=None),
    reason: Optional[str] = Query(default=None),
):
    return {"page": "login", "next": _safe_next(next), "reason": reason}


@router.get("/logout")
def logout_page(request: Request, reason: Optional[str] = Query(default=None)):
    location = logout(getattr(request.state, "session_user", None), reason)
    response = RedirectResponse(location, status_code=307)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return response


@router.get("/{company_id}/dashboard")
def dashboard(company_id: str, request: Request, db: Session = Depends(get_db)):
    context = _page_context(request, db, company_id)
    if isinstance(context, RedirectResponse):
        return context
    return {
        "page": "dashboard",
        "context": context,
        "modules": [m.value for m in visible_modules(context.company_role)],
        "attendance_sensitive": has_attendance_sensitive_access(context.company_role),
    }


@router.get("/{company_id}/employee-portal")
def employee_portal(company_id: str, request: Request, db: Session = Depends(get_db)):
    context = _page_context(request, db, company_id)
    if isinstance(context, RedirectResponse):
        return context
    return {"page": "employee-portal", "context": context}
