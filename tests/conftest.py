import os

os.environ.setdefault("PG_HOST", "localhost")
os.environ.setdefault("PG_DB", "payroll_test")
os.environ.setdefault("PG_USER", "payroll")
os.environ.setdefault("PG_PASSWORD", "payroll")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("SESSION_COOKIE_SECURE", "false")

import time
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.auth import sign_session_token
from core.config import settings
from core.db import get_db
from core.security import hash_password
from domain.sqlalchemy_models import Base, Company, User, UserCompanyAccess

PASSWORD = "correct-horse"
PASSWORD_HASH = hash_password(PASSWORD)
BASE_TIME = datetime(2025, 1, 1, 8, 0, 0)


class FakeRedis:
    """Just the commands the revocation store uses."""

    def __init__(self):
        self.store = {}

    def setex(self, key, ttl, value):
        self.store[key] = (value, time.time() + ttl)
        return True

    def exists(self, *keys):
        now = time.time()
        return sum(1 for k in keys if k in self.store and self.store[k][1] > now)


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr("repositories.session_repo.rds", fake)
    return fake


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class Factory:
    def __init__(self, db):
        self.db = db
        self._tick = 0

    def company(self, code, name=None, is_active=True):
        company = Company(id=f"co-{code.lower()}", code=code, name=name or f"{code} Inc.", is_active=is_active)
        self.db.add(company)
        self.db.commit()
        return company

    def user(self, email, is_active=True, selected_company_id=None, username=None):
        user = User(
            email=email,
            username=username,
            password_hash=PASSWORD_HASH,
            first_name=email.split("@")[0].title(),
            last_name="Tester",
            is_active=is_active,
            selected_company_id=selected_company_id,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def grant(self, user, company, role="EMPLOYEE", is_default=False, is_active=True, created_at=None):
        self._tick += 1
        grant = UserCompanyAccess(
            user_id=user.id,
            company_id=company.id,
            role=role,
            is_default=is_default,
            is_active=is_active,
            created_at=created_at or BASE_TIME + timedelta(minutes=self._tick),
        )
        self.db.add(grant)
        self.db.commit()
        return grant


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def client(session_factory):
    from main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    with TestClient(app, follow_redirects=False) as c:
        yield c
    app.dependency_overrides.clear()


def login_as(client, user_id, role, default_company_id, selected_company_id=None):
    token = sign_session_token(user_id, role, default_company_id, selected_company_id or default_company_id)
    client.cookies.set(settings.SESSION_COOKIE_NAME, token)
    return token
