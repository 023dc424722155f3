"""
Mobile authentication endpoints.

Tokens are bearer JWTs bound to a single company; every call re-validates the
user and the grant, so revocation applies at the next request.
"""
from __future__ import annotations
from typing import Optional
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from core.db import get_db
from core.roles import CompanyRole
from services.auth_service import mobile_login, mobile_refresh

router = APIRouter(prefix="/api/mobile/v1/auth", tags=["mobile"])


class MobileLoginIn(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email or username")
    password: str = Field(..., min_length=6, description="User password")
    company_id: Optional[str] = Field(default=None, description="Company to bind the tokens to")


class MobileRefreshIn(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class MobileTokensOut(BaseModel):
    ok: bool
    company_id: str
    role: CompanyRole
    access_token: str
    refresh_token: str
    expires_in_seconds: int


@router.post("/login", response_model=MobileTokensOut)
def login(body: MobileLoginIn, req: Request, db: Session = Depends(get_db)) -> dict:
    ua = req.headers.get("user-agent")
    ip = req.client.host if req.client else None
    return mobile_login(db, body.identifier, body.password, body.company_id, ua, ip)


@router.post("/refresh", response_model=MobileTokensOut)
def refresh(body: MobileRefreshIn, db: Session = Depends(get_db)) -> dict:
    return mobile_refresh(db, body.refresh_token)
