from __future__ import annotations

import os
from pathlib import Path
import sys
from typing import Callable, Dict

import pytest
from fastapi.testclient import TestClient

# Ensure the application uses an isolated SQLite database for tests
os.environ["SQLITE_URL"] = "sqlite:///./test_app.db"
# Ensure deterministic secrets and demo data for tests
os.environ.setdefault("JWT_SECRET", "test-secret-please-change")
os.environ.setdefault("SEED_INITIAL_DATA", "1")
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "1")
os.environ.pop("SMTP_HOST", None)

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from app.main import app  # noqa: E402
from app.core.context import AuthContext  # noqa: E402
from app.core.database import SessionLocal, engine  # noqa: E402
from app.models.entities import User  # noqa: E402

TEST_DB_PATH = Path("test_app.db")


@pytest.fixture()
def client() -> TestClient:
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()
    with TestClient(app) as test_client:
        yield test_client
    engine.dispose()
    if TEST_DB_PATH.exists():
        TEST_DB_PATH.unlink()


@pytest.fixture()
def db(client: TestClient):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def ctx_for(db) -> Callable[[str], AuthContext]:
    """Build the auth context the guards would resolve for a seeded user."""

    def _ctx(email: str) -> AuthContext:
        user = db.query(User).filter(User.email == email).one()
        return AuthContext(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=user.role,
            external_client_id=user.external_client_id,
        )

    return _ctx


@pytest.fixture()
def auth_headers(client: TestClient) -> Callable[[str, str], Dict[str, str]]:
    def _authenticate(username: str, password: str) -> Dict[str, str]:
        response = client.post(
            "/auth/login",
            data={"username": username, "password": password},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        assert response.status_code == 200, response.text
        token = response.json()["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return _authenticate
