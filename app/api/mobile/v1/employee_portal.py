# app/api/mobile/v1/employee_portal.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from core.auth import MobileClaims, mobile_claims_required
from core.db import get_db
from core.errors import http_error, ErrorCode
from core.roles import AppModule, has_module_access, parse_role, visible_modules
from services.auth_service import mobile_session_grant

router = APIRouter(prefix="/api/mobile/v1/employee-portal", tags=["mobile"])


@router.get("/bootstrap")
def bootstrap(claims: MobileClaims = Depends(mobile_claims_required), db: Session = Depends(get_db)) -> dict:
    """First call after login: who am I, which company, which modules."""
    grant = mobile_session_grant(db, claims)
    role = parse_role(grant.role)
    if not has_module_access(role, AppModule.EMPLOYEE_PORTAL):
        raise http_error(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            message="You do not have permission for this action",
            meta={"required_module": AppModule.EMPLOYEE_PORTAL.value, "tenant_id": grant.company_id},
        )
    return {
        "ok": True,
        "user": {
            "user_id": grant.user.id,
            "email": grant.user.email,
            "full_name": grant.user.full_name,
        },
        "company": {
            "company_id": grant.company_id,
            "company_code": grant.company.code,
            "company_name": grant.company.name,
            "role": role.value,
            "is_default": bool(grant.is_default),
        },
        "modules": [module.value for module in visible_modules(role)],
    }
