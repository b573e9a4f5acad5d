import os

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://127.0.0.1:1/0"
os.environ["IDENTITY_SECRET_KEY"] = ""
os.environ["ADMIN_EMAILS"] = "ops@redverse.test"
os.environ["CREEM_API_URL"] = "https://billing.test/v1/checkouts"
os.environ["CREEM_API_KEY"] = "prod-key"
os.environ["CREEM_DEV_API_URL"] = "https://test-billing.test/v1/checkouts"
os.environ["CREEM_DEV_API_KEY"] = "dev-key"
os.environ["BILLING_WEBHOOK_SECRET"] = ""
os.environ["DEV_MODE"] = "false"
os.environ["RESEND_API_KEY"] = ""
os.environ["NOTIFICATION_EMAIL"] = ""

import json
from typing import Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from app.core.kv_store import get_kv_store
from app.db.session import SessionLocal, engine
from app.main import app
from app.models import Base
from app.services.auth import create_session_token
from app.services.identity import IdentityUser, get_identity_client
from app.services.notifications import Mailer, get_mailer


class FakeIdentity:
    def __init__(self) -> None:
        self.users_by_email: dict[str, list[str]] = {}
        self.error: Optional[Exception] = None
        self.lookups: list[str] = []

    def add(self, email: str, *user_ids: str) -> None:
        self.users_by_email.setdefault(email, []).extend(user_ids)

    def find_users_by_email(self, email: str, limit: int = 10) -> list[IdentityUser]:
        self.lookups.append(email)
        if self.error is not None:
            raise self.error
        return [IdentityUser(id=user_id, email=email) for user_id in self.users_by_email.get(email, [])]


def bearer(user_id: str, email: Optional[str] = None, role: str = "user") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user_id, email, role)}"}


@pytest.fixture()
def schema():
    get_kv_store.cache_clear()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db(schema):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture()
def client(schema, identity) -> TestClient:
    app.dependency_overrides[get_identity_client] = lambda: identity
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return bearer("user_admin", "admin@redverse.test", role="admin")


@pytest.fixture()
def user_headers() -> dict[str, str]:
    return bearer("user_new", "maker@example.com")


@pytest.fixture()
def mail_api(client):
    """Route outgoing mail to a fake API; returns (sent payloads, settable response status)."""
    sent: list[dict] = []
    state = {"status": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append({"headers": dict(request.headers), **json.loads(request.content)})
        if state["status"] != 200:
            return httpx.Response(state["status"], json={"message": "mail exploded"})
        return httpx.Response(200, json={"id": f"msg_{len(sent)}"})

    mailer = Mailer("https://mail.test/emails", "re_test", "Redverse <hello@redverse.test>", transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_mailer] = lambda: mailer
    return sent, state
