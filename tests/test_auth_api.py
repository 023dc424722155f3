import datetime

import jwt
from sqlalchemy import select

from core.auth import decode_session_token
from core.config import settings
from core.roles import CompanyRole
from domain.sqlalchemy_models import AuditLog, User

from conftest import PASSWORD, login_as


def _login(client, identifier, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password})


def _audit_reasons(db):
    db.expire_all()
    return [row.reason for row in db.scalars(select(AuditLog).order_by(AuditLog.id))]


def test_login_starts_session_on_default_company(client, db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com", username="hr")
    factory.grant(user, a, role="HR_ADMIN")
    factory.grant(user, b, role="EMPLOYEE", is_default=True)

    response = _login(client, "hr")

    assert response.status_code == 200
    body = response.json()
    assert body["home_path"] == f"/{b.id}/employee-portal"
    assert body["current_company"]["company_id"] == b.id
    assert [c["company_id"] for c in body["companies"]] == [b.id, a.id]
    assert settings.SESSION_COOKIE_NAME in response.cookies

    session = decode_session_token(body["token"])
    assert session.user_id == user.id
    assert session.company_role is CompanyRole.EMPLOYEE
    assert session.default_company_id == b.id
    assert "LOGIN_SUCCESS" in _audit_reasons(db)


def test_login_uses_persisted_selection_when_still_usable(client, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com", selected_company_id="co-a")
    factory.grant(user, a, role="PAYROLL_ADMIN")
    factory.grant(user, b, role="EMPLOYEE", is_default=True)

    body = _login(client, "hr@example.com").json()

    assert body["home_path"] == f"/{a.id}/dashboard"
    session = decode_session_token(body["token"])
    assert session.selected_company_id == a.id
    assert session.default_company_id == b.id


def test_login_failures_are_uniform_and_audited(client, db, factory):
    a = factory.company("A")
    user = factory.user("hr@example.com")
    factory.grant(user, a, is_default=True)
    factory.user("gone@example.com", is_active=False)

    wrong_password = _login(client, "hr@example.com", "wrong-password")
    unknown = _login(client, "ghost@example.com")
    disabled = _login(client, "gone@example.com")

    assert wrong_password.status_code == 401
    assert unknown.status_code == 401
    assert disabled.status_code == 403
    for response in (wrong_password, unknown, disabled):
        assert response.json()["detail"]["message"] == "Invalid credentials"
    assert _audit_reasons(db) == [
        "LOGIN_FAILED_BAD_PASSWORD",
        "LOGIN_FAILED_USER_NOT_FOUND",
        "LOGIN_BLOCKED_INACTIVE_USER",
    ]


def test_login_without_usable_company_is_blocked(client, db, factory):
    closed = factory.company("X", is_active=False)
    user = factory.user("hr@example.com")
    factory.grant(user, closed, is_default=True)

    response = _login(client, "hr@example.com")

    assert response.status_code == 403
    assert "LOGIN_BLOCKED_NO_ACTIVE_COMPANY_ACCESS" in _audit_reasons(db)


def test_me_requires_a_well_formed_session(client):
    assert client.get("/api/v1/auth/me").status_code == 401

    login_as(client, "u1", "MYSTERY", "c1")
    response = client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json()["detail"]["meta"]["reason"] == "invalid-session"

    login_as(client, "u1", CompanyRole.APPROVER, "c1")
    body = client.get("/api/v1/auth/me").json()
    assert body["home_path"] == "/c1/dashboard"
    assert body["company_role"] == "APPROVER"


def test_switch_company_persists_and_reissues_session(client, db, factory):
    a = factory.company("A")
    b = factory.company("B")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="EMPLOYEE", is_default=True)
    factory.grant(user, b, role="HR_ADMIN")
    login_as(client, user.id, CompanyRole.EMPLOYEE, a.id)

    response = client.post("/api/v1/auth/switch-company", json={"company_id": b.id})

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "HR_ADMIN"
    assert body["home_path"] == f"/{b.id}/dashboard"
    session = decode_session_token(body["token"])
    assert session.selected_company_id == b.id
    assert session.default_company_id == a.id

    db.expire_all()
    assert db.get(User, user.id).selected_company_id == b.id
    assert "ACTIVE_COMPANY_SWITCHED" in _audit_reasons(db)


def test_switch_to_company_without_grant_is_denied(client, db, factory):
    a = factory.company("A")
    other = factory.company("O")
    user = factory.user("hr@example.com", selected_company_id="co-a")
    factory.grant(user, a, role="HR_ADMIN", is_default=True)
    login_as(client, user.id, CompanyRole.HR_ADMIN, a.id)

    response = client.post("/api/v1/auth/switch-company", json={"company_id": other.id})

    assert response.status_code == 403
    db.expire_all()
    assert db.get(User, user.id).selected_company_id == a.id
    assert "ACTIVE_COMPANY_SWITCHED" not in _audit_reasons(db)


def test_switch_rejected_when_membership_is_gone(client, factory):
    a = factory.company("A")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN", is_default=True, is_active=False)
    login_as(client, user.id, CompanyRole.HR_ADMIN, a.id)

    response = client.post("/api/v1/auth/switch-company", json={"company_id": a.id})

    assert response.status_code == 401


def test_logout_revokes_the_session(client, fake_redis):
    login_as(client, "u1", CompanyRole.HR_ADMIN, "c1")
    token = client.cookies.get(settings.SESSION_COOKIE_NAME)

    assert client.post("/api/v1/auth/logout").status_code == 200

    client.cookies.set(settings.SESSION_COOKIE_NAME, token)
    assert client.get("/api/v1/auth/me").status_code == 401
    response = client.get("/c1/dashboard")
    assert response.headers["location"] == "/login?next=%2Fc1%2Fdashboard"
    assert len(fake_redis.store) == 1


def test_logout_page_clears_cookie_and_normalizes_reason(client):
    login_as(client, "u1", CompanyRole.HR_ADMIN, "c1")

    response = client.get("/logout?reason=whatever")

    assert response.status_code == 307
    assert response.headers["location"] == "/login?reason=invalid-session"
    assert client.get("/logout").headers["location"] == "/login?reason=invalid-session"
    assert client.get("/logout?reason=expired").headers["location"] == "/login?reason=expired"


def test_keep_alive_renews_only_aged_sessions(client, factory, fake_redis):
    a = factory.company("A")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN", is_default=True)
    login_as(client, user.id, CompanyRole.HR_ADMIN, a.id)
    fresh = client.post("/api/v1/auth/keep-alive").json()
    assert fresh == {"ok": True, "renewed": False}

    issued = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=10)
    aged = jwt.encode(
        {
            "sub": user.id,
            "typ": "session",
            "company_role": "HR_ADMIN",
            "default_company_id": a.id,
            "selected_company_id": a.id,
            "jti": "aged-session",
            "iat": issued,
            "exp": issued + datetime.timedelta(minutes=30),
        },
        settings.JWT_SECRET,
        algorithm="HS256",
    )
    client.cookies.set(settings.SESSION_COOKIE_NAME, aged)

    response = client.post("/api/v1/auth/keep-alive")

    assert response.json()["renewed"] is True
    assert fake_redis.exists("session:revoked:aged-session") == 1
    renewed = decode_session_token(response.cookies[settings.SESSION_COOKIE_NAME])
    assert renewed.jti != "aged-session"
    assert renewed.selected_company_id == a.id


def test_keep_alive_refuses_deactivated_user(client, db, factory, fake_redis):
    a = factory.company("A")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN", is_default=True)
    login_as(client, user.id, CompanyRole.HR_ADMIN, a.id)

    user.is_active = False
    db.commit()

    response = client.post("/api/v1/auth/keep-alive")

    assert response.status_code == 401
    assert response.json()["detail"]["meta"]["reason"] == "invalid-session"
    assert fake_redis.store == {}


def test_keep_alive_refuses_user_without_usable_company(client, db, factory):
    a = factory.company("A")
    user = factory.user("hr@example.com")
    factory.grant(user, a, role="HR_ADMIN", is_default=True)
    login_as(client, user.id, CompanyRole.HR_ADMIN, a.id)

    a.is_active = False
    db.commit()

    assert client.post("/api/v1/auth/keep-alive").status_code == 401
