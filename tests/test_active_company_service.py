import pytest

from core.auth import SessionUser
from core.errors import InactiveCompany, Malformed, NoAccess, NoSession
from core.roles import CompanyRole
from domain.sqlalchemy_models import User
from services.active_company_service import ActiveCompanyResolver


def session_for(user, default_company_id=None, role=CompanyRole.HR_ADMIN):
    return SessionUser(
        user_id=user.id,
        company_role=role,
        default_company_id=default_company_id,
        selected_company_id=default_company_id,
    )


def test_resolve_requires_a_session(db):
    resolver = ActiveCompanyResolver(db)
    with pytest.raises(NoSession):
        resolver.resolve(None)
    with pytest.raises(NoSession):
        resolver.resolve(SessionUser(user_id=""), "co-a")


@pytest.mark.parametrize("requested", [None, "co-a", "co-unknown"])
def test_user_without_active_grants_gets_no_access(db, factory, requested):
    a = factory.company("A")
    user = factory.user("nobody@example.com")
    factory.grant(user, a, is_active=False, is_default=True)

    with pytest.raises(NoAccess):
        ActiveCompanyResolver(db).resolve(session_for(user, "co-a"), requested)


def test_default_grant_wins_without_explicit_company(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN")
    factory.grant(user, b, role="PAYROLL_ADMIN", is_default=True)

    context = ActiveCompanyResolver(db).resolve(session_for(user))

    assert context.company_id == b.id
    assert context.company_code == "B"
    assert context.company_role is CompanyRole.PAYROLL_ADMIN
    assert context.is_default_company is True


def test_persisted_selection_takes_over_after_switch(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN")
    factory.grant(user, b, role="PAYROLL_ADMIN", is_default=True)
    resolver = ActiveCompanyResolver(db)

    assert resolver.resolve(session_for(user, b.id)).company_id == b.id

    previous = resolver.persist_selection(user.id, a.id)

    assert previous is None
    context = resolver.resolve(session_for(user, b.id))
    assert context.company_id == a.id
    assert context.company_role is CompanyRole.HR_ADMIN
    assert context.is_default_company is False


def test_explicit_request_beats_persisted_selection(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com", selected_company_id="co-a")
    factory.grant(user, a, is_default=True)
    factory.grant(user, b)

    context = ActiveCompanyResolver(db).resolve(session_for(user, a.id), b.id)

    assert context.company_id == b.id


def test_revoked_selection_falls_back_to_best_grant(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("emp@example.com", selected_company_id="co-a")
    factory.grant(user, a, is_active=False)
    factory.grant(user, b, is_default=True)

    context = ActiveCompanyResolver(db).resolve(session_for(user))

    assert context.company_id == b.id


def test_fallback_without_default_picks_earliest_grant(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("emp@example.com")
    factory.grant(user, b)
    factory.grant(user, a)

    context = ActiveCompanyResolver(db).resolve(session_for(user), "co-unknown")

    assert context.company_id == b.id


def test_inactive_company_is_never_returned_when_requested(db, factory):
    a = factory.company("A", is_active=False)
    b = factory.company("B")
    user = factory.user("hr@example.com")
    factory.grant(user, a, is_default=True)
    factory.grant(user, b)

    with pytest.raises(InactiveCompany):
        ActiveCompanyResolver(db).resolve(session_for(user), a.id)


def test_inactive_only_grant_is_a_hard_stop(db, factory):
    a = factory.company("A", is_active=False)
    user = factory.user("hr@example.com")
    factory.grant(user, a, is_default=True)

    with pytest.raises(InactiveCompany):
        ActiveCompanyResolver(db).resolve(session_for(user, a.id))


def test_persist_selection_refuses_without_grant_and_does_not_write(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    c = factory.company("C", is_active=False)
    user = factory.user("hr@example.com", selected_company_id="co-a")
    factory.grant(user, a, is_default=True)
    factory.grant(user, b, is_active=False)
    factory.grant(user, c)
    resolver = ActiveCompanyResolver(db)

    for company_id in (b.id, c.id, "co-unknown"):
        with pytest.raises(NoAccess):
            resolver.persist_selection(user.id, company_id)

    db.expire_all()
    assert db.get(User, user.id).selected_company_id == a.id
    assert db.get(User, user.id).last_company_switched_at is None


def test_persist_selection_returns_previous_and_stamps_switch_time(db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com", selected_company_id="co-a")
    factory.grant(user, a, is_default=True)
    factory.grant(user, b)

    previous = ActiveCompanyResolver(db).persist_selection(user.id, b.id)

    db.expire_all()
    stored = db.get(User, user.id)
    assert previous == a.id
    assert stored.selected_company_id == b.id
    assert stored.last_company_switched_at is not None


def test_company_options_lists_only_usable_grants(db, factory):
    zeta = factory.company("Z", name="Zeta Corp")
    alpha = factory.company("AL", name="Alpha Corp")
    mid = factory.company("M", name="Mid Corp")
    closed = factory.company("X", name="Closed Corp", is_active=False)
    revoked = factory.company("R", name="Revoked Corp")
    user = factory.user("hr@example.com")
    factory.grant(user, alpha, role="HR_ADMIN")
    factory.grant(user, zeta, role="EMPLOYEE", is_default=True)
    factory.grant(user, mid, role="APPROVER")
    factory.grant(user, closed)
    factory.grant(user, revoked, is_active=False)

    options = ActiveCompanyResolver(db).company_options(user.id)

    assert [o.company_name for o in options] == ["Zeta Corp", "Alpha Corp", "Mid Corp"]
    assert options[0].is_default is True
    assert options[1].role is CompanyRole.HR_ADMIN


def test_unknown_role_on_grant_resolves_with_no_role(db, factory):
    a = factory.company("A")
    user = factory.user("odd@example.com")
    factory.grant(user, a, role="LEGACY_ROLE", is_default=True)

    context = ActiveCompanyResolver(db).resolve(session_for(user))

    assert context.company_id == a.id
    assert context.company_role is None


def test_membership_validity(db, factory):
    a = factory.company("A")
    active = factory.user("active@example.com")
    disabled = factory.user("disabled@example.com", is_active=False)
    orphan = factory.user("orphan@example.com")
    factory.grant(active, a)
    factory.grant(disabled, a)
    resolver = ActiveCompanyResolver(db)

    assert resolver.membership_is_valid(active.id) is True
    assert resolver.membership_is_valid(disabled.id) is False
    assert resolver.membership_is_valid(orphan.id) is False


def test_ensure_membership_raises_malformed_when_membership_is_gone(db, factory):
    a = factory.company("A")
    closed = factory.company("X", is_active=False)
    active = factory.user("active@example.com")
    stranded = factory.user("stranded@example.com")
    factory.grant(active, a)
    factory.grant(stranded, closed)
    resolver = ActiveCompanyResolver(db)

    resolver.ensure_membership(active.id)
    with pytest.raises(Malformed) as excinfo:
        resolver.ensure_membership(stranded.id)
    assert excinfo.value.reason == "invalid-session"
