"""
Route guard: the edge gate in front of every navigable page request.

Follows Layer 2 rules:
- Runs before any page code; API routes enforce auth through dependencies
- Rules are evaluated in a fixed order, first match wins
- Every outcome is a redirect or a pass-through; the guard never raises and
  never serves the requested page once a check has failed
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from core.auth import SessionUser, read_session
from core.logger import get_logger, log_security_event
from core.roles import CompanyRole
from core.routes import (
    is_company_scoped_path,
    is_dashboard_path,
    is_employee_portal_path,
    required_roles_for_path,
)

LOGIN_PATH = "/login"
LOGOUT_PATH = "/logout"
LEGACY_DASHBOARD_PATH = "/dashboard"
INVALID_SESSION_REDIRECT = f"{LOGOUT_PATH}?reason=invalid-session"

_BYPASS_PREFIXES = ("/api", "/static/", "/health", "/docs", "/redoc", "/openapi.json")
_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".svg", ".ico", ".css", ".js", ".map", ".woff", ".woff2")

log = get_logger("guard")


@dataclass(frozen=True)
class GuardDecision:
    location: Optional[str] = None
    rule: str = "allow"

    @property
    def allowed(self) -> bool:
        return self.location is None


ALLOW = GuardDecision()


def is_guarded_path(path: str) -> bool:
    """False for the allow-list: API prefix, static assets, health and docs."""
    if path.startswith(_BYPASS_PREFIXES):
        return False
    return not path.lower().endswith(_ASSET_SUFFIXES)


def login_redirect(path: str, query: str = "") -> str:
    next_param = f"{path}?{query}" if query else path
    return f"{LOGIN_PATH}?{urlencode({'next': next_param})}"


def evaluate(path: str, query: str, user: Optional[SessionUser]) -> GuardDecision:
    """
    Decide what happens to a page request.

    Args:
        path: Request path
        query: Raw query string (without "?")
        user: Current session, None when anonymous

    Returns:
        GuardDecision; `location` is set when the request must be redirected
    """
    logged_in = user is not None
    is_legacy_dashboard = path == LEGACY_DASHBOARD_PATH
    is_employee_route = is_employee_portal_path(path)
    is_protected = is_legacy_dashboard or is_dashboard_path(path) or is_employee_route

    if path.startswith(LOGOUT_PATH):
        return GuardDecision(rule="logout")

    if logged_in and not user.is_well_formed:
        return GuardDecision(INVALID_SESSION_REDIRECT, "malformed-session")

    if not logged_in:
        if is_protected:
            return GuardDecision(login_redirect(path, query), "login-required")
        return ALLOW

    home = user.home_path

    if path == "/" or path.startswith(LOGIN_PATH):
        return GuardDecision(home, "already-logged-in")

    if is_legacy_dashboard:
        return GuardDecision(home, "legacy-dashboard")

    if not is_company_scoped_path(path):
        return ALLOW

    if user.company_role is CompanyRole.EMPLOYEE and not is_employee_route:
        return GuardDecision(home, "employee-containment")

    required = required_roles_for_path(path)
    if required is not None and user.company_role not in required:
        return GuardDecision(home, "role-required")

    return ALLOW


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """
    Applies `evaluate` to every guarded request and exposes the session to
    handlers as `request.state.session_user`.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if not is_guarded_path(path):
            return await call_next(request)

        try:
            user = read_session(request)
        except Exception:
            log.error("Session read failed; treating request as anonymous", exc_info=True)
            user = None

        decision = evaluate(path, request.url.query, user)
        if not decision.allowed:
            if decision.rule in ("malformed-session", "employee-containment", "role-required"):
                log_security_event(
                    action="route_guard",
                    result="denied",
                    user_id=user.user_id if user else None,
                    tenant_id=user.home_company_id if user else None,
                    meta={"rule": decision.rule, "path": path},
                    level="warning",
                )
            return RedirectResponse(decision.location, status_code=307)

        request.state.session_user = user
        return await call_next(request)
