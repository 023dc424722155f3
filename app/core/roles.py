"""
RBAC (Role-Based Access Control) module for the payroll/HR backend.

Follows Layer 2 rules:
- Company roles are: COMPANY_ADMIN, HR_ADMIN, PAYROLL_ADMIN, APPROVER, EMPLOYEE
- Role strings are parsed once at the trust boundary (token decode, grant rows);
  anything unrecognized becomes None and is denied everywhere
- RBAC logic MUST live in this dedicated module, not scattered
- Clear rules:
  - COMPANY_ADMIN → every module
  - Other roles → explicit module allow-list
  - Raw attendance punches/schedules of the whole workforce → sensitive capability
- Policy functions are pure and total: they never raise on bad input
"""
from __future__ import annotations
from enum import Enum
from typing import Optional, Union
from core.errors import http_error, ErrorCode


class CompanyRole(str, Enum):
    COMPANY_ADMIN = "COMPANY_ADMIN"
    HR_ADMIN = "HR_ADMIN"
    PAYROLL_ADMIN = "PAYROLL_ADMIN"
    APPROVER = "APPROVER"
    EMPLOYEE = "EMPLOYEE"


class AppModule(str, Enum):
    EMPLOYEES = "employees"
    ATTENDANCE = "attendance"
    PAYROLL = "payroll"
    REPORTS = "reports"
    LEAVE = "leave"
    SETTINGS = "settings"
    EMPLOYEE_PORTAL = "employee_portal"


ALL_ROLES: frozenset[CompanyRole] = frozenset(CompanyRole)

# COMPANY_ADMIN is implicit; it is not listed here.
MODULE_ACCESS: dict[CompanyRole, frozenset[AppModule]] = {
    CompanyRole.HR_ADMIN: frozenset({
        AppModule.EMPLOYEES,
        AppModule.ATTENDANCE,
        AppModule.REPORTS,
        AppModule.LEAVE,
        AppModule.SETTINGS,
        AppModule.EMPLOYEE_PORTAL,
    }),
    CompanyRole.PAYROLL_ADMIN: frozenset({
        AppModule.ATTENDANCE,
        AppModule.PAYROLL,
        AppModule.REPORTS,
        AppModule.LEAVE,
        AppModule.SETTINGS,
        AppModule.EMPLOYEE_PORTAL,
    }),
    CompanyRole.APPROVER: frozenset({
        AppModule.EMPLOYEES,
        AppModule.ATTENDANCE,
        AppModule.LEAVE,
        AppModule.EMPLOYEE_PORTAL,
    }),
    CompanyRole.EMPLOYEE: frozenset({
        AppModule.ATTENDANCE,
        AppModule.LEAVE,
        AppModule.EMPLOYEE_PORTAL,
    }),
}

ATTENDANCE_SENSITIVE_ROLES: frozenset[CompanyRole] = frozenset({
    CompanyRole.COMPANY_ADMIN,
    CompanyRole.HR_ADMIN,
    CompanyRole.PAYROLL_ADMIN,
})

RoleLike = Union[CompanyRole, str, None]


def parse_role(value: RoleLike) -> Optional[CompanyRole]:
    """
    Validate a role value coming from outside (token claim, database row).

    Args:
        value: Raw role value

    Returns:
        The CompanyRole, or None when the value is not a recognized role
    """
    if isinstance(value, CompanyRole):
        return value
    if not isinstance(value, str):
        return None
    try:
        return CompanyRole(value.strip())
    except ValueError:
        return None


def parse_module(value: Union[AppModule, str, None]) -> Optional[AppModule]:
    if isinstance(value, AppModule):
        return value
    if not isinstance(value, str):
        return None
    try:
        return AppModule(value.strip().lower())
    except ValueError:
        return None


def has_module_access(role: RoleLike, module: Union[AppModule, str, None]) -> bool:
    """
    Whether `role` may use `module` within its active company.

    Unknown roles and unknown modules are denied, COMPANY_ADMIN included.
    """
    parsed_role = parse_role(role)
    parsed_module = parse_module(module)
    if parsed_role is None or parsed_module is None:
        return False
    if parsed_role is CompanyRole.COMPANY_ADMIN:
        return True
    return parsed_module in MODULE_ACCESS.get(parsed_role, frozenset())


def has_attendance_sensitive_access(role: RoleLike) -> bool:
    """
    Whether `role` may see per-employee time-in/time-out and schedules for the
    whole workforce. Narrower than attendance module access.
    """
    parsed_role = parse_role(role)
    return parsed_role is not None and parsed_role in ATTENDANCE_SENSITIVE_ROLES


def roles_for_module(module: AppModule) -> frozenset[CompanyRole]:
    """Every role that `has_module_access` admits for `module`."""
    return frozenset(role for role in CompanyRole if has_module_access(role, module))


def visible_modules(role: RoleLike) -> list[AppModule]:
    """Modules to show in navigation for `role`, in declaration order."""
    return [module for module in AppModule if has_module_access(role, module)]


def ensure_module_access(role: RoleLike, module: AppModule, tenant_id: Optional[str] = None) -> None:
    """
    Raise a stable 403 error shape when `role` may not use `module`.

    Args:
        role: Company role of the caller (from the resolved context)
        module: Module being accessed
        tenant_id: Company id, echoed in the error meta

    Raises:
        HTTPException: 403 if access is denied
    """
    if not has_module_access(role, module):
        raise http_error(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            message="You do not have permission for this action",
            meta={
                "required_module": module.value,
                "current_role": role.value if isinstance(role, CompanyRole) else role,
                "tenant_id": tenant_id,
            },
        )
