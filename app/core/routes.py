"""
Static route configuration: which company roles may open which page paths.

Company-scoped pages live under `/{company_id}/<module path>`. The role set for
a module path is derived from the RBAC policy in core.roles so navigation and
module checks cannot drift apart.
"""
from __future__ import annotations
import re
from typing import Optional
from core.roles import AppModule, CompanyRole, ALL_ROLES, roles_for_module

DASHBOARD = "dashboard"
EMPLOYEE_PORTAL = "employee-portal"

# (prefix, module); first match wins
MODULE_PREFIXES: tuple[tuple[str, AppModule], ...] = (
    ("/employees", AppModule.EMPLOYEES),
    ("/attendance", AppModule.ATTENDANCE),
    ("/payroll", AppModule.PAYROLL),
    ("/reports", AppModule.REPORTS),
    ("/leave", AppModule.LEAVE),
    ("/overtime", AppModule.LEAVE),
    ("/approvals", AppModule.LEAVE),
    ("/settings", AppModule.SETTINGS),
)

_ANY_COMPANY_SCOPED = re.compile(r"^/[^/]+/.+")


def _section_pattern(section: str) -> re.Pattern:
    return re.compile(rf"^/[^/]+/{re.escape(section)}(?:/.*)?$")


_DASHBOARD_PATH = _section_pattern(DASHBOARD)
_EMPLOYEE_PORTAL_PATH = _section_pattern(EMPLOYEE_PORTAL)


def _matches_prefix(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(f"{prefix}/")


def is_dashboard_path(path: str) -> bool:
    return _DASHBOARD_PATH.match(path) is not None


def is_employee_portal_path(path: str) -> bool:
    return _EMPLOYEE_PORTAL_PATH.match(path) is not None


def is_company_scoped_path(path: str) -> bool:
    return _ANY_COMPANY_SCOPED.match(path) is not None


def company_path(company_id: str, path: str) -> str:
    return f"/{company_id}{path}"


def home_path_for(company_id: Optional[str], role: Optional[CompanyRole]) -> Optional[str]:
    """
    Canonical landing route for a role inside a company.

    Returns:
        `/{company_id}/employee-portal` for EMPLOYEE, `/{company_id}/dashboard`
        for any other role, or None without a company
    """
    if not company_id:
        return None
    if role is CompanyRole.EMPLOYEE:
        return company_path(company_id, f"/{EMPLOYEE_PORTAL}")
    return company_path(company_id, f"/{DASHBOARD}")


def required_roles_for_path(path: str) -> Optional[frozenset[CompanyRole]]:
    """
    Roles allowed to open a company-scoped path.

    Args:
        path: Request path, e.g. "/c-123/payroll/runs"

    Returns:
        Frozen set of roles, or None when the path imposes no role requirement
    """
    parts = [p for p in path.split("/") if p]
    if len(parts) < 2:
        return None

    module_path = "/" + "/".join(parts[1:])

    if _matches_prefix(module_path, f"/{DASHBOARD}"):
        return ALL_ROLES
    if _matches_prefix(module_path, f"/{EMPLOYEE_PORTAL}"):
        return roles_for_module(AppModule.EMPLOYEE_PORTAL)

    for prefix, module in MODULE_PREFIXES:
        if _matches_prefix(module_path, prefix):
            return roles_for_module(module)
    return None
