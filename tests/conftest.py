import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("ENABLE_METRICS", "false")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("TZ_DEFAULT", "Asia/Kolkata")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from plotgate.auth.identity import SqlIdentityProvider
from plotgate.auth.security import create_access_token
from plotgate.db import Base, get_db
from plotgate.main import app
from plotgate.models import models  # noqa: F401
from plotgate.services.accounts import create_account
from plotgate.store import collections as c
from plotgate.store.sql_provider import SqlDocumentStore


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return SqlDocumentStore(db)


@pytest.fixture
def identity(db):
    return SqlIdentityProvider(db)


@pytest.fixture
def client(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(store, identity):
    counter = {"n": 0}

    def _make(role, name=None, created_at=None):
        counter["n"] += 1
        n = counter["n"]
        record = create_account(
            store,
            identity,
            email=f"{role}{n}@example.com",
            password="password123",
            display_name=name or f"{role.title()} {n}",
            role=role,
            now=created_at or datetime(2025, 1, 1, 0, 0, n),
        )
        return record.uid

    return _make


@pytest.fixture
def auth_header():
    def _header(uid, role):
        return {"Authorization": f"Bearer {create_access_token(uid, role)}"}

    return _header


@pytest.fixture
def make_plot(store):
    def _make(owner_id=None, number=1):
        return store.add(c.PLOTS, {"project_id": "proj-1", "plot_number": number, "status": "sold", "owner_id": owner_id})

    return _make
