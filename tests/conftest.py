import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_RATE_LIMIT"] = "10000/minute"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace import services
from marketplace.api import app, limiter
from marketplace.auth import create_access_token, get_db
from marketplace.database import init_db


@pytest.fixture
def session_local():
    """Provide an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def session(session_local):
    db = session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client(session_local):
    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers(session):
    admin = services.create_admin_user(session, "root", "root@example.com", "admin-pass")
    token = create_access_token(admin.user_id, admin.role)
    return {"Authorization": f"Bearer {token}"}


def register(client, name, role="user", **extra):
    body = {
        "username": name,
        "password": "secret",
        "email": f"{name}@example.com",
        "role": role,
    }
    if role == "vendor":
        body.setdefault("company_name", f"{name} Ltd")
    body.update(extra)
    return client.post("/api/user/register", json=body)
