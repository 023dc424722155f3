# app/core/errors.py
from typing import Any, Dict, Optional
from fastapi import HTTPException
from enum import Enum

class ErrorCode(str, Enum):
    UNAUTHORIZED = "unauthorized"        # 401
    FORBIDDEN = "forbidden"              # 403
    NOT_FOUND = "not_found"              # 404
    CONFLICT = "conflict"                # 409
    VALIDATION_ERROR = "validation_error"# 422
    INTERNAL_ERROR = "internal_error"    # 500
    BAD_REQUEST = "bad_request"          # 400

def http_error(
    *,
    status_code: int,
    code: ErrorCode,
    message: str,
    meta: Optional[Dict[str, Any]] = None,
) -> HTTPException:
    """
    Standardized HTTPException factory.
    Frontend should key on `detail.code` for i18n and behavior.
    """
    detail = {
        "code": code.value,
        "message": message,
    }
    if meta:
        detail["meta"] = meta
    return HTTPException(status_code=status_code, detail=detail)


# --- Active company resolution failures ---
# None of these are transient; callers report them, they never retry.

class ActiveCompanyContextError(Exception):
    """Base class for failures resolving a user's company context."""
    status_code = 403
    code = ErrorCode.FORBIDDEN
    reason: Optional[str] = None


class NoSession(ActiveCompanyContextError):
    """No authenticated identity."""
    status_code = 401
    code = ErrorCode.UNAUTHORIZED


class NoAccess(ActiveCompanyContextError):
    """Identity exists but holds no usable grant."""


class InactiveCompany(ActiveCompanyContextError):
    """The resolved grant's company is deactivated."""


class Malformed(ActiveCompanyContextError):
    """
    Identity exists but is no longer a valid session: it fails basic shape
    checks (role, id, home path), or the user or every usable grant was
    deactivated after sign-in.
    """
    status_code = 401
    code = ErrorCode.UNAUTHORIZED
    reason = "invalid-session"


def context_http_error(exc: ActiveCompanyContextError) -> HTTPException:
    """Map a resolution failure onto the standard error shape."""
    return http_error(
        status_code=exc.status_code,
        code=exc.code,
        message=str(exc) or "No access to this company",
        meta={"reason": exc.reason or type(exc).__name__},
    )
