"""
Active company resolution: which company a request acts within, and as what role.

Follows Layer 4 rules:
- The context is recomputed from persisted grants on every call; nothing is
  cached across requests (company switches and revocations take effect at once)
- Candidate precedence is an explicit ordered list:
  requested > persisted selection > session default
- An inactive company is a hard stop, never a silent switch to another company
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session
from core.auth import SessionUser
from core.errors import NoSession, NoAccess, InactiveCompany, Malformed
from core.logger import log_security_event
from core.roles import parse_role
from domain.models import ActiveCompanyContext, UserCompanyOption
from domain.sqlalchemy_models import UserCompanyAccess
from repositories import company_access_repo, user_repo


def _first_candidate(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def _to_context(user_id: str, grant: UserCompanyAccess) -> ActiveCompanyContext:
    return ActiveCompanyContext(
        user_id=user_id,
        company_id=grant.company_id,
        company_code=grant.company.code,
        company_name=grant.company.name,
        company_role=parse_role(grant.role),
        is_default_company=bool(grant.is_default),
    )


class ActiveCompanyResolver:
    """
    Resolves and persists a user's active company.

    One instance per request, bound to that request's database session.
    """

    def __init__(self, db: Session, repo=company_access_repo):
        self.db = db
        self.repo = repo

    def resolve(
        self,
        session_user: Optional[SessionUser],
        requested_company_id: Optional[str] = None,
    ) -> ActiveCompanyContext:
        """
        Resolve the active company context for a request.

        Args:
            session_user: Current web session (None when anonymous)
            requested_company_id: Company named by the URL or the caller

        Returns:
            ActiveCompanyContext

        Raises:
            NoSession: no authenticated identity
            NoAccess: the user holds no active grant at all
            InactiveCompany: the resolved grant's company is deactivated
        """
        if session_user is None or not session_user.user_id:
            raise NoSession("Unauthorized: no authenticated user")
        user_id = session_user.user_id

        candidate = _first_candidate(
            requested_company_id,
            self.repo.get_selected_company_id(self.db, user_id),
            session_user.default_company_id,
        )

        grant = self.repo.find_active_grant(self.db, user_id, candidate) if candidate else None
        if grant is None:
            # Candidate revoked or never granted: fall back to the best grant anywhere.
            grant = self.repo.find_active_grant(self.db, user_id)
            if grant is not None and candidate:
                log_security_event(
                    action="active_company_fallback",
                    result="substituted",
                    user_id=user_id,
                    tenant_id=grant.company_id,
                    meta={"candidate_company_id": candidate},
                    level="warning",
                )

        if grant is None:
            raise NoAccess("No active company access found for user")

        if not grant.company.is_active:
            raise InactiveCompany("Selected company is inactive")

        return _to_context(user_id, grant)

    def persist_selection(self, user_id: str, company_id: str) -> Optional[str]:
        """
        Store `company_id` as the user's sticky company preference.

        Verifies a usable grant for exactly this pair first; the write is last
        writer wins. Commits on success.

        Returns:
            The previously selected company id (for auditing)

        Raises:
            NoAccess: no active grant (or inactive company) for the pair;
                nothing is written
        """
        grant = self.repo.find_usable_grant(self.db, user_id, company_id)
        if grant is None:
            raise NoAccess("Cannot persist selected company without active user access")

        previous = self.repo.get_selected_company_id(self.db, user_id)
        self.repo.set_selected_company(self.db, user_id, company_id, datetime.now(timezone.utc))
        self.db.commit()
        return previous

    def company_options(self, user_id: str) -> list[UserCompanyOption]:
        """Companies the user can switch to, default first then by name."""
        return [
            UserCompanyOption(
                company_id=grant.company_id,
                company_code=grant.company.code,
                company_name=grant.company.name,
                role=parse_role(grant.role),
                is_default=bool(grant.is_default),
            )
            for grant in self.repo.list_usable_grants(self.db, user_id)
        ]

    def membership_is_valid(self, user_id: str) -> bool:
        """The user is still active and keeps at least one usable grant."""
        if user_repo.get_active_user(self.db, user_id) is None:
            return False
        return bool(self.repo.list_usable_grants(self.db, user_id))

    def ensure_membership(self, user_id: str) -> None:
        """
        Raises:
            Malformed: the user was deactivated or lost every usable grant
                after the session was issued
        """
        if not self.membership_is_valid(user_id):
            log_security_event(
                action="membership_check",
                result="invalid",
                user_id=user_id,
                level="warning",
            )
            raise Malformed("Session is no longer valid. Please sign in again.")
