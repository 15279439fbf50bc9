"""Test fixtures — a fresh in-memory database per test.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite in-memory engine (aiosqlite) with the
   schema created straight from the ORM metadata — no Postgres needed.
2. The app's get_db dependency is overridden to hand out that session,
   so a test can look at rows the API just wrote.
3. The mailer and Google client are swapped for in-memory fakes: the
   fake mailer keeps an outbox so tests can read the emailed code.
"""

import os

# Must be set before notekeeper.config is imported.
os.environ.setdefault("NOTEKEEPER_BCRYPT_ROUNDS", "4")
os.environ.setdefault("NOTEKEEPER_ENVIRONMENT", "development")

import uuid
from dataclasses import dataclass, field
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from notekeeper.auth.google import ExternalProfile, get_google_client
from notekeeper.db.engine import get_db
from notekeeper.db.models import Base
from notekeeper.errors import ProviderAuthFailed
from notekeeper.main import app
from notekeeper.services.mailer import Mailer, get_mailer

TEST_DB_URL = "sqlite+aiosqlite://"


# ─── Fakes ──────────────────────────────────────────────


@dataclass
class SentCode:
    recipient: str
    code: str
    name: str


class FakeMailer(Mailer):
    """Records every code instead of sending it. Set `fail` to simulate outages."""

    def __init__(self):
        self.outbox: list[SentCode] = []
        self.fail = False

    async def send_verification_code(self, recipient: str, code: str, name: str) -> bool:
        if self.fail:
            return False
        self.outbox.append(SentCode(recipient, code, name))
        return True

    def last_code(self, recipient: str) -> str:
        for sent in reversed(self.outbox):
            if sent.recipient == recipient:
                return sent.code
        raise AssertionError(f"no code sent to {recipient}")


@dataclass
class FakeGoogle:
    """Stands in for GoogleOAuthClient; `code` → profile lookup."""

    profiles: dict[str, ExternalProfile] = field(default_factory=dict)
    enabled: bool = True

    def authorize_url(self, state: str) -> str:
        return f"https://accounts.google.com/o/oauth2/v2/auth?state={state}"

    async def fetch_profile(self, code: str) -> ExternalProfile:
        try:
            return self.profiles[code]
        except KeyError:
            raise ProviderAuthFailed("Token exchange failed (status=400)")


# ─── Database ───────────────────────────────────────────


@pytest_asyncio.fixture()
async def db_session():
    """Per-test session on a throwaway in-memory database."""
    engine = create_async_engine(
        TEST_DB_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture()
def mailer():
    return FakeMailer()


@pytest.fixture()
def google():
    return FakeGoogle()


@pytest_asyncio.fixture()
async def client(db_session, mailer, google):
    """HTTP client with DB, mailer and Google overridden; auth is real."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_google_client] = lambda: google

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Helpers ────────────────────────────────────────────


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}@example.com"


async def register(
    client: AsyncClient,
    email: str,
    password: str = "secure_password_123",
    name: str = "Test User",
):
    return await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "name": name},
    )


async def register_and_verify(
    client: AsyncClient,
    mailer: FakeMailer,
    email: Optional[str] = None,
    password: str = "secure_password_123",
    name: str = "Test User",
) -> dict:
    """Full password signup. Returns the verify-otp response body."""
    email = email or unique_email()
    r = await register(client, email, password, name)
    assert r.status_code == 201, r.text
    r = await client.post(
        "/api/v1/auth/verify-otp",
        json={"email": email, "otp": mailer.last_code(email)},
    )
    assert r.status_code == 200, r.text
    return r.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
