from __future__ import annotations

import sys
from datetime import timezone
from pathlib import Path

import mongomock
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from training_passport.store import DocumentStore  # noqa: E402

ADMIN_CREDENTIALS = {"identifier": "admin", "password": "password"}


@pytest.fixture()
def app_client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENV", "testing")
    monkeypatch.setenv("MONGODB_URI", "mongomock://localhost")
    monkeypatch.setenv("DB_NAME", "training_passport_test")
    monkeypatch.setenv("INTERNAL_CRON_TOKEN", "test-cron-token")
    monkeypatch.setenv("SEED_ADMIN", "1")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    # Prevent accidental pollution from any existing env config.
    for name in ("SMTP_HOST", "SMTP_FROM", "CORS_ORIGINS", "MONGO_TRANSACTIONS"):
        monkeypatch.delenv(name, raising=False)

    from training_passport import create_app
    from training_passport.db import reset_client_for_tests
    from training_passport.middleware import limiter

    reset_client_for_tests()
    limiter.reset()

    app = create_app()
    app.testing = True

    with app.test_client() as client:
        yield app, client

    reset_client_for_tests()


@pytest.fixture()
def store() -> DocumentStore:
    client = mongomock.MongoClient(tz_aware=True, tzinfo=timezone.utc)
    return DocumentStore(client["training_passport_test"], client=client)


def login(client, identifier: str, password: str) -> str:
    res = client.post("/api/v1/auth/login", json={"identifier": identifier, "password": password})
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]["access_token"]


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def admin_token(app_client) -> str:
    _app, client = app_client
    return login(client, **ADMIN_CREDENTIALS)
