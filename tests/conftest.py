import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.core.security import get_password_hash
from app.db import models
from app.db.session import get_db

DEFAULT_PASSWORD = "senha-segura-123"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "")
    monkeypatch.setattr(settings, "WEBHOOK_URL", "")
    monkeypatch.setattr(settings, "WEBHOOK_API_KEY", "")
    monkeypatch.setattr(settings, "WEBHOOK_SECRET", "")


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    yield db
    db.close()


@pytest.fixture()
def client(session_factory, monkeypatch):
    from app import main

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(main, "SessionLocal", session_factory)
    main.app.dependency_overrides[get_db] = override_get_db
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture()
def make_tenant(db_session):
    counter = {"n": 0}

    def _make(name="Municipio Teste", tax_id=None):
        counter["n"] += 1
        tenant = models.Tenant(name=name, tax_id=tax_id or f"00.000.000/0001-{counter['n']:02d}")
        db_session.add(tenant)
        db_session.commit()
        db_session.refresh(tenant)
        return tenant

    return _make


@pytest.fixture()
def make_user(db_session):
    password_hash = get_password_hash(DEFAULT_PASSWORD)

    def _make(tenant=None, role=models.ROLE_ADMIN, email=None, name="Usuario Teste"):
        user = models.User(
            tenant_id=tenant.id if tenant else None,
            name=name,
            email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
            password_hash=password_hash,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture()
def auth_headers(client):
    def _login(user, password=DEFAULT_PASSWORD):
        res = client.post("/api/auth/login", json={"email": user.email, "password": password})
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['token']}"}

    return _login
