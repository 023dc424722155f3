"""
Authentication endpoints (web session).

Follows Layer 1 and Layer 3 rules:
- Validate input with Pydantic schemas
- Return minimal information on failure
- ALWAYS use Pydantic models for request/response
- The session token is set as an HTTP-only cookie; it is also returned for
  non-browser clients
"""
from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from core.auth import SessionUser, read_session, session_required
from core.config import settings
from core.db import get_db
from core.errors import http_error, ErrorCode
from core.roles import CompanyRole
from services.auth_service import login_issue_session, logout, refresh_session, switch_company

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


class LoginIn(BaseModel):
    """Request schema for user login."""
    identifier: str = Field(..., min_length=1, description="Email or username")
    password: str = Field(..., min_length=6, description="User password")


class LoginOut(BaseModel):
    """Response schema for successful login."""
    ok: bool
    token: str
    home_path: str
    current_company: dict
    companies: list[dict]


class MeOut(BaseModel):
    """Response schema for /me endpoint."""
    ok: bool
    user_id: str
    company_role: CompanyRole
    default_company_id: Optional[str]
    selected_company_id: Optional[str]
    home_path: str


class SwitchCompanyIn(BaseModel):
    """Request schema for company switch."""
    company_id: str = Field(..., min_length=1, description="Target company identifier")


class SwitchCompanyOut(BaseModel):
    """Response schema for company switch."""
    ok: bool
    token: str
    company_id: str
    role: Optional[CompanyRole]
    home_path: Optional[str]


class KeepAliveOut(BaseModel):
    ok: bool
    renewed: bool


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        token,
        max_age=settings.SESSION_MAX_AGE_MIN * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _client_meta(req: Request) -> tuple[Optional[str], Optional[str]]:
    return req.headers.get("user-agent"), (req.client.host if req.client else None)


@router.post("/login", response_model=LoginOut)
def login(body: LoginIn, req: Request, response: Response, db: Session = Depends(get_db)) -> dict:
    """
    Authenticate user and start a web session.

    Args:
        body: Login credentials
        req: FastAPI Request object (for user-agent and IP)

    Returns:
        Dict with token, home_path, current_company and companies list
    """
    ua, ip = _client_meta(req)
    data = login_issue_session(db, body.identifier, body.password, ua, ip)
    set_session_cookie(response, data["token"])
    return data


@router.get("/me", response_model=MeOut)
def me(user: SessionUser = Depends(session_required)) -> dict:
    """Current session as seen by the server."""
    return {
        "ok": True,
        "user_id": user.user_id,
        "company_role": user.company_role,
        "default_company_id": user.default_company_id,
        "selected_company_id": user.selected_company_id,
        "home_path": user.home_path,
    }


@router.post("/switch-company", response_model=SwitchCompanyOut)
def switch(
    p: SwitchCompanyIn,
    req: Request,
    response: Response,
    user: SessionUser = Depends(session_required),
    db: Session = Depends(get_db),
) -> dict:
    """
    Switch the user's active company.

    Args:
        p: Target company identifier
        user: Current web session

    Returns:
        Dict with new token, company_id, role and home_path
    """
    ua, ip = _client_meta(req)
    data = switch_company(db, user, p.company_id, user_agent=ua, ip=ip)
    set_session_cookie(response, data["token"])
    return {"ok": True, **data}


@router.post("/keep-alive", response_model=KeepAliveOut)
def keep_alive(
    response: Response,
    user: SessionUser = Depends(session_required),
    db: Session = Depends(get_db),
) -> dict:
    """Sliding expiry: renews the session once it is older than the update age."""
    token = refresh_session(db, user)
    if token:
        set_session_cookie(response, token)
    return {"ok": True, "renewed": token is not None}


@router.post("/logout")
def api_logout(req: Request, response: Response) -> dict:
    user = read_session(req)
    if user is None:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Authentication is required.",
        )
    logout(user, None)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"ok": True}
