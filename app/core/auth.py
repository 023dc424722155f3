"""
Session and JWT token management module.

Follows Layer 1 rules:
- Sign tokens with strong, private signing keys from environment variables
- NEVER hardcode secrets or keys in the repository
- Include user_id, company role and company hints in JWT claims
- Set sensible expirations (30 min sliding web session, 30 min mobile access)
- Web sessions travel in an HTTP-only cookie; mobile tokens via
  Authorization: Bearer <token>
- Role claims are validated here, once; downstream code only sees CompanyRole
"""
from __future__ import annotations
import datetime
import uuid
from typing import Any, Optional
import jwt
import redis
from fastapi import Request
from pydantic import BaseModel, Field
from core.config import settings
from core.errors import http_error, ErrorCode, Malformed, context_http_error
from core.logger import get_logger
from core.roles import CompanyRole, parse_role
from core.routes import home_path_for
from repositories.session_repo import is_session_revoked

SESSION_TOKEN_TYPE = "session"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
_ALGORITHM = "HS256"

log = get_logger("auth")


class SessionUser(BaseModel):
    """Authenticated web session, as read from the session cookie."""
    user_id: str = ""
    company_role: Optional[CompanyRole] = None
    default_company_id: Optional[str] = None
    selected_company_id: Optional[str] = None
    jti: Optional[str] = None
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "SessionUser":
        return cls(
            user_id=str(claims.get("sub") or ""),
            company_role=parse_role(claims.get("company_role")),
            default_company_id=claims.get("default_company_id") or None,
            selected_company_id=claims.get("selected_company_id") or None,
            jti=claims.get("jti"),
            issued_at=claims.get("iat"),
            expires_at=claims.get("exp"),
        )

    @property
    def home_company_id(self) -> Optional[str]:
        return self.selected_company_id or self.default_company_id

    @property
    def home_path(self) -> Optional[str]:
        return home_path_for(self.home_company_id, self.company_role)

    @property
    def is_well_formed(self) -> bool:
        return bool(self.user_id) and self.company_role is not None and self.home_path is not None


class MobileClaims(BaseModel):
    """Verified mobile token claims; always bound to one company."""
    user_id: str
    company_id: str
    company_role: Optional[CompanyRole] = None
    token_type: str
    jti: str
    expires_at: int = Field(..., description="Unix timestamp")


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def sign_session_token(
    user_id: str,
    company_role: CompanyRole | str | None,
    default_company_id: str | None,
    selected_company_id: str | None,
) -> str:
    """
    Sign a web session token.

    Args:
        user_id: User identifier
        company_role: Role in the selected company
        default_company_id: Company of the user's default grant
        selected_company_id: Company the session currently acts within

    Returns:
        Encoded JWT token string
    """
    now = _now()
    role = company_role.value if isinstance(company_role, CompanyRole) else company_role
    payload = {
        "sub": str(user_id),
        "typ": SESSION_TOKEN_TYPE,
        "company_role": role,
        "default_company_id": default_company_id,
        "selected_company_id": selected_company_id,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + datetime.timedelta(minutes=settings.SESSION_MAX_AGE_MIN),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM)


def _decode(token: str) -> Optional[dict[str, Any]]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.InvalidTokenError:
        return None


def decode_session_token(token: str) -> Optional[SessionUser]:
    """
    Decode a session token. Expired, tampered or wrongly-typed tokens read as
    no session at all; a validly signed token with bad contents still returns a
    SessionUser so the route guard can treat it as malformed.
    """
    claims = _decode(token)
    if not claims or claims.get("typ") != SESSION_TOKEN_TYPE:
        return None
    return SessionUser.from_claims(claims)


def _bearer_token(req: Request) -> Optional[str]:
    auth = req.headers.get("authorization") or req.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def read_session(req: Request) -> Optional[SessionUser]:
    """
    Current web session for a request, or None when anonymous.

    Revoked sessions (logged out) are anonymous. If the revocation store is
    unreachable the session is treated as anonymous as well.
    """
    token = req.cookies.get(settings.SESSION_COOKIE_NAME) or _bearer_token(req)
    if not token:
        return None

    user = decode_session_token(token)
    if user is None:
        return None

    if user.jti:
        try:
            if is_session_revoked(user.jti):
                return None
        except redis.RedisError:
            log.error("Session revocation lookup failed", exc_info=True)
            return None
    return user


def session_required(req: Request) -> SessionUser:
    """
    FastAPI dependency for API routes: a well-formed web session.

    Raises:
        HTTPException: 401 if missing, expired or revoked; 401 with reason
            "invalid-session" if malformed
    """
    user = read_session(req)
    if user is None:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Authentication is required.",
        )
    if not user.is_well_formed:
        raise context_http_error(Malformed("Session is no longer valid. Please sign in again."))
    return user


# --- Mobile tokens ---

def _sign_mobile_token(
    user_id: str,
    company_id: str,
    company_role: CompanyRole,
    token_type: str,
    ttl: datetime.timedelta,
) -> str:
    now = _now()
    payload = {
        "sub": str(user_id),
        "typ": token_type,
        "company_id": company_id,
        "company_role": company_role.value,
        "jti": uuid.uuid4().hex,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=_ALGORITHM)


def issue_mobile_tokens(user_id: str, company_id: str, company_role: CompanyRole) -> dict:
    """
    Issue an access/refresh token pair bound to one company.

    Returns:
        Dict with access_token, refresh_token and expires_in_seconds
    """
    access_ttl = datetime.timedelta(minutes=settings.MOBILE_ACCESS_TTL_MIN)
    refresh_ttl = datetime.timedelta(days=settings.MOBILE_REFRESH_TTL_DAYS)
    return {
        "access_token": _sign_mobile_token(user_id, company_id, company_role, ACCESS_TOKEN_TYPE, access_ttl),
        "refresh_token": _sign_mobile_token(user_id, company_id, company_role, REFRESH_TOKEN_TYPE, refresh_ttl),
        "expires_in_seconds": int(access_ttl.total_seconds()),
    }


def verify_mobile_token(token: str, token_type: str) -> Optional[MobileClaims]:
    claims = _decode(token)
    if not claims or claims.get("typ") != token_type:
        return None
    if not claims.get("sub") or not claims.get("company_id"):
        return None
    return MobileClaims(
        user_id=str(claims["sub"]),
        company_id=str(claims["company_id"]),
        company_role=parse_role(claims.get("company_role")),
        token_type=token_type,
        jti=str(claims.get("jti") or ""),
        expires_at=int(claims["exp"]),
    )


def mobile_claims_required(req: Request) -> MobileClaims:
    """
    FastAPI dependency that validates a mobile access token.

    Raises:
        HTTPException: 401 if the bearer token is missing, invalid or expired
    """
    token = _bearer_token(req)
    if not token:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Missing bearer token.",
        )
    claims = verify_mobile_token(token, ACCESS_TOKEN_TYPE)
    if claims is None:
        raise http_error(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            message="Invalid or expired access token.",
        )
    return claims
