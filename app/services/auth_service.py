"""
Authentication service for login, company switching, logout and mobile tokens.

Follows Layer 1 and Layer 6 rules:
- Validates credentials securely
- Returns minimal information on failure (no "user not found vs wrong password" distinction)
- Logs security events and writes audit rows for login outcomes and company switches
- NEVER logs plaintext passwords, hashes or tokens
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session
from core.auth import (
    REFRESH_TOKEN_TYPE,
    MobileClaims,
    SessionUser,
    issue_mobile_tokens,
    sign_session_token,
    verify_mobile_token,
)
from core.config import settings
from core.errors import http_error, ErrorCode, Malformed, NoAccess, context_http_error
from core.logger import log_security_event
from core.roles import CompanyRole, parse_role
from core.routes import home_path_for
from core.security import verify_password
from domain.sqlalchemy_models import User, UserCompanyAccess
from repositories import audit_repo, company_access_repo, user_repo
from repositories.session_repo import revoke_session
from services.active_company_service import ActiveCompanyResolver

LOGOUT_REASONS = ("invalid-session", "inactive", "expired")


def _invalid_credentials(status_code: int = 401):
    return http_error(
        status_code=status_code,
        code=ErrorCode.UNAUTHORIZED if status_code == 401 else ErrorCode.FORBIDDEN,
        message="Invalid credentials",
    )


def _audit_auth_event(
    db: Session,
    *,
    record_id: str,
    reason: str,
    old_value: str,
    new_value: str,
    user_id: Optional[str],
    ip: Optional[str],
    user_agent: Optional[str],
) -> None:
    audit_repo.create_audit_log(
        db,
        table_name="AuthSession",
        record_id=record_id,
        action="UPDATE",
        reason=reason,
        user_id=user_id,
        ip_address=ip,
        user_agent=user_agent,
        changes=[audit_repo.field_change("authEvent", old_value, new_value)],
    )
    db.commit()


def _authenticate(
    db: Session,
    identifier: str,
    password: str,
    user_agent: Optional[str],
    ip: Optional[str],
) -> User:
    """Check credentials; failures are audited and raise a uniform error."""
    identifier = identifier.strip()
    user = user_repo.get_user_by_identifier(db, identifier) if identifier else None

    if user is None or not user.is_active:
        verify_password(password, None)
        reason = "LOGIN_BLOCKED_INACTIVE_USER" if user else "LOGIN_FAILED_USER_NOT_FOUND"
        log_security_event(
            action="login",
            result="failure",
            user_id=user.id if user else None,
            meta={"reason": reason.lower()},
        )
        _audit_auth_event(
            db,
            record_id=user.id if user else f"identifier:{identifier}",
            reason=reason,
            old_value="ANONYMOUS",
            new_value="LOGIN_BLOCKED" if user else "LOGIN_FAILED",
            user_id=user.id if user else None,
            ip=ip,
            user_agent=user_agent,
        )
        raise _invalid_credentials(403 if user else 401)

    if not verify_password(password, user.password_hash):
        log_security_event(
            action="login",
            result="failure",
            user_id=user.id,
            meta={"reason": "invalid_password"},
        )
        _audit_auth_event(
            db,
            record_id=user.id,
            reason="LOGIN_FAILED_BAD_PASSWORD",
            old_value="ANONYMOUS",
            new_value="LOGIN_FAILED",
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        raise _invalid_credentials()

    return user


def _usable_default_grant(db: Session, user_id: str) -> Optional[UserCompanyAccess]:
    grants = company_access_repo.list_usable_grants(db, user_id)
    if not grants:
        return None
    # Explicit default first, otherwise the earliest-created usable grant.
    defaults = [g for g in grants if g.is_default]
    return defaults[0] if defaults else min(grants, key=lambda g: (g.created_at, g.id))


def login_issue_session(
    db: Session,
    identifier: str,
    password: str,
    user_agent: str | None,
    ip: str | None,
) -> dict:
    """
    Authenticate a user and issue a web session token.

    The session selects the persisted company preference when it is still
    usable, otherwise the user's default grant.

    Args:
        db: Database session
        identifier: Email or username
        password: Plaintext password (compared against the bcrypt hash)
        user_agent: HTTP User-Agent header (optional, for auditing)
        ip: Client IP address (optional, for auditing)

    Returns:
        Dict with token, home_path, current_company and companies list

    Raises:
        HTTPException: 401 for invalid credentials, 403 for disabled user or no company access
    """
    user = _authenticate(db, identifier, password, user_agent, ip)

    default_grant = _usable_default_grant(db, user.id)
    if default_grant is None:
        log_security_event(
            action="login",
            result="failure",
            user_id=user.id,
            meta={"reason": "no_active_company_access"},
        )
        _audit_auth_event(
            db,
            record_id=user.id,
            reason="LOGIN_BLOCKED_NO_ACTIVE_COMPANY_ACCESS",
            old_value="AUTHENTICATED",
            new_value="LOGIN_BLOCKED",
            user_id=user.id,
            ip=ip,
            user_agent=user_agent,
        )
        raise _invalid_credentials(403)

    selected_grant = default_grant
    if user.selected_company_id and user.selected_company_id != default_grant.company_id:
        selected_grant = (
            company_access_repo.find_usable_grant(db, user.id, user.selected_company_id)
            or default_grant
        )

    now = datetime.now(timezone.utc)
    previous_login = user_repo.mark_login(db, user, now)
    audit_repo.create_audit_log(
        db,
        table_name="AuthSession",
        record_id=user.id,
        action="UPDATE",
        reason="LOGIN_SUCCESS",
        user_id=user.id,
        ip_address=ip,
        user_agent=user_agent,
        changes=[
            audit_repo.field_change("authEvent", "ANONYMOUS", "LOGIN_SUCCESS"),
            audit_repo.field_change("lastLoginAt", previous_login, now),
        ],
    )
    db.commit()

    role = parse_role(selected_grant.role)
    token = sign_session_token(user.id, role, default_grant.company_id, selected_grant.company_id)

    log_security_event(
        action="login",
        result="success",
        user_id=user.id,
        tenant_id=selected_grant.company_id,
        meta={"role": selected_grant.role},
    )

    companies = ActiveCompanyResolver(db).company_options(user.id)
    return {
        "ok": True,
        "token": token,
        "home_path": home_path_for(selected_grant.company_id, role),
        "current_company": {
            "company_id": selected_grant.company_id,
            "company_name": selected_grant.company.name,
            "role": selected_grant.role,
        },
        "companies": [c.model_dump(mode="json") for c in companies],
    }


def switch_company(
    db: Session,
    session_user: SessionUser,
    company_id: str,
    user_agent: str | None = None,
    ip: str | None = None,
) -> dict:
    """
    Persist a new active company and re-issue the session token for it.

    Args:
        db: Database session
        session_user: Current web session
        company_id: Target company identifier

    Returns:
        Dict with new token, company_id, role and home_path

    Raises:
        HTTPException: 401 if the session is no longer valid, 403 if the user
            has no usable grant for the target company
    """
    resolver = ActiveCompanyResolver(db)
    user_id = session_user.user_id

    try:
        resolver.ensure_membership(user_id)
    except Malformed as exc:
        raise context_http_error(exc)

    try:
        previous = resolver.persist_selection(user_id, company_id)
    except NoAccess as exc:
        log_security_event(
            action="company_switch",
            result="denied",
            user_id=user_id,
            tenant_id=company_id,
            level="warning",
        )
        raise http_error(
            status_code=403,
            code=ErrorCode.FORBIDDEN,
            message=str(exc),
            meta={"tenant_id": company_id},
        )

    audit_repo.create_audit_log(
        db,
        table_name="User",
        record_id=user_id,
        action="UPDATE",
        reason="ACTIVE_COMPANY_SWITCHED",
        user_id=user_id,
        ip_address=ip,
        user_agent=user_agent,
        changes=[audit_repo.field_change("selectedCompanyId", previous, company_id)],
    )
    db.commit()

    context = resolver.resolve(session_user, company_id)
    token = sign_session_token(user_id, context.company_role, session_user.default_company_id, context.company_id)

    log_security_event(
        action="company_switch",
        result="success",
        user_id=user_id,
        tenant_id=context.company_id,
        meta={"role": context.company_role.value if context.company_role else None, "previous": previous},
    )

    return {
        "token": token,
        "company_id": context.company_id,
        "role": context.company_role,
        "home_path": home_path_for(context.company_id, context.company_role),
    }


def refresh_session(db: Session, session_user: SessionUser) -> Optional[str]:
    """
    Keep-alive: re-issue the session once it is older than the update age.

    Membership is re-checked on every call, so a deactivated user cannot keep
    a session alive by polling.

    Returns:
        A fresh token, or None when the current one is still recent

    Raises:
        HTTPException: 401 with reason "invalid-session" when the user or all
            of their usable grants were deactivated
    """
    try:
        ActiveCompanyResolver(db).ensure_membership(session_user.user_id)
    except Malformed as exc:
        raise context_http_error(exc)

    issued_at = session_user.issued_at or 0
    age_seconds = datetime.now(timezone.utc).timestamp() - issued_at
    if age_seconds < settings.SESSION_UPDATE_AGE_MIN * 60:
        return None
    if session_user.jti:
        revoke_session(session_user.jti, session_user.expires_at)
    return sign_session_token(
        session_user.user_id,
        session_user.company_role,
        session_user.default_company_id,
        session_user.selected_company_id,
    )


def logout(session_user: Optional[SessionUser], reason: Optional[str]) -> str:
    """
    Revoke the current session (if any) and return the login URL to land on.

    Missing and unknown reasons are reported as invalid-session.
    """
    if session_user is not None and session_user.jti:
        revoke_session(session_user.jti, session_user.expires_at)
        log_security_event(
            action="logout",
            result="success",
            user_id=session_user.user_id or None,
            tenant_id=session_user.home_company_id,
            meta={"reason": reason},
        )

    if reason not in LOGOUT_REASONS:
        reason = "invalid-session"
    return f"/login?reason={reason}"


# --- Mobile ---

def _mobile_grant(db: Session, user_id: str, company_id: Optional[str]) -> Optional[UserCompanyAccess]:
    if company_id:
        return company_access_repo.find_usable_grant(db, user_id, company_id)
    return _usable_default_grant(db, user_id)


def mobile_login(
    db: Session,
    identifier: str,
    password: str,
    company_id: str | None,
    user_agent: str | None,
    ip: str | None,
) -> dict:
    """
    Authenticate a mobile client and issue tokens bound to one company.

    Raises:
        HTTPException: 401 for invalid credentials, 403 without company access
    """
    user = _authenticate(db, identifier, password, user_agent, ip)
    grant = _mobile_grant(db, user.id, (company_id or "").strip() or None)
    role = parse_role(grant.role) if grant else None
    if grant is None or role is None:
        log_security_event(
            action="mobile_login",
            result="failure",
            user_id=user.id,
            tenant_id=company_id,
            meta={"reason": "no_active_company_access"},
        )
        raise _invalid_credentials(403)

    user_repo.mark_login(db, user, datetime.now(timezone.utc))
    db.commit()
    log_security_event(action="mobile_login", result="success", user_id=user.id, tenant_id=grant.company_id)
    return {
        "ok": True,
        "company_id": grant.company_id,
        "role": role,
        **issue_mobile_tokens(user.id, grant.company_id, role),
    }


def mobile_session_grant(db: Session, claims: MobileClaims) -> UserCompanyAccess:
    """
    Re-validate a mobile token against current data: the user is active and
    still holds a usable grant for the token's company.

    Raises:
        HTTPException: 401 when the session is no longer valid
    """
    grant = None
    if user_repo.get_active_user(db, claims.user_id) is not None:
        grant = company_access_repo.find_usable_grant(db, claims.user_id, claims.company_id)
    if grant is None or parse_role(grant.role) is None:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Session is no longer valid.",
        )
    return grant


def mobile_refresh(db: Session, refresh_token: str) -> dict:
    """
    Exchange a refresh token for a new token pair.

    The role is re-read from the grant so revocations and role changes apply.
    """
    claims = verify_mobile_token(refresh_token, REFRESH_TOKEN_TYPE)
    if claims is None:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Invalid or expired refresh token.",
        )
    grant = mobile_session_grant(db, claims)
    role: CompanyRole = parse_role(grant.role)
    return {
        "ok": True,
        "company_id": grant.company_id,
        "role": role,
        **issue_mobile_tokens(claims.user_id, grant.company_id, role),
    }
