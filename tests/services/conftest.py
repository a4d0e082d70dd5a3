"""Service test fixtures — async DB, FastAPI test client, fake Twilio gateway.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB sessions
    - db_manager patched for code paths that open their own sessions
    - get_twilio_gateway overridden with FakeTwilioGateway (no network)

Design Decisions:
    - SQLite in-memory with StaticPool: every session shares one connection,
      so rows committed by a request are visible to the test session
    - Identity via header, like the upstream gateway sends it
"""

from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.pool import StaticPool

import portal.infrastructure.database as db_module
from portal.config import get_settings
from portal.core.errors import TwilioAPIError
from portal.db.base import Base
from portal.infrastructure.database import DatabaseSessionManager, get_db
from portal.infrastructure.twilio_client import TwilioCredentials, get_twilio_gateway
from portal.main import app
from portal.models.user import User

TWILIO_SID = "AC" + "a" * 32
TWILIO_TOKEN = "twilio-auth-token-1234"
TWILIO_FROM = "+14155550199"


class FakeTwilioGateway:
    """Records calls; responses configured per test."""

    def __init__(self):
        self.sent: list[dict] = []
        self.calls: dict[str, dict] = {}
        self.recordings: dict[str, dict] = {}
        self.media: dict[str, tuple[bytes, str]] = {}
        self.fetched: list[str] = []
        self.fail_send = False

    async def send_sms(self, creds: TwilioCredentials, to: str, body: str) -> str:
        if self.fail_send:
            raise TwilioAPIError("Authenticate", "http_error", status_code=401)
        self.sent.append({"to": to, "body": body, "from": creds.from_number_e164})
        return f"SM{len(self.sent):032d}"

    async def fetch_call(self, creds: TwilioCredentials, call_sid: str) -> dict:
        if call_sid not in self.calls:
            raise TwilioAPIError("not found", "http_error", status_code=404)
        return self.calls[call_sid]

    async def fetch_latest_recording(self, creds, call_sid: str) -> dict | None:
        return self.recordings.get(call_sid)

    async def fetch_media(self, creds, url: str, max_bytes: int) -> tuple[bytes, str]:
        self.fetched.append(url)
        if url not in self.media:
            raise TwilioAPIError("not found", "http_error", status_code=404)
        content, content_type = self.media[url]
        if len(content) > max_bytes:
            raise TwilioAPIError("too large", "media_too_large")
        return content, content_type

    async def close(self) -> None:
        return None


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", echo=False, poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_twilio():
    return FakeTwilioGateway()


@pytest.fixture
async def client(test_engine, test_session_factory, fake_twilio):
    """FastAPI test client with DB and Twilio dependencies overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_twilio_gateway] = lambda: fake_twilio

    original_manager = db_module.db_manager
    fake_manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    fake_manager.engine = test_engine
    fake_manager._session_factory = test_session_factory
    db_module.db_manager = fake_manager

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager


async def _make_user(db: AsyncSession, email: str, role: str, **kwargs) -> User:
    user = User(email=email, name=email.split("@")[0], role=role, **kwargs)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
def make_user(test_db):
    async def _factory(email: str, role: str = "CLIENT", **kwargs) -> User:
        return await _make_user(test_db, email, role, **kwargs)
    return _factory


@pytest.fixture
async def owner(test_db):
    """Portal account owner (tenant)."""
    return await _make_user(test_db, "owner@example.com", "CLIENT", phone="+14155550123")


def auth_headers(user_or_id) -> dict:
    user_id = user_or_id if isinstance(user_or_id, UUID) else user_or_id.id
    return {get_settings().identity_header: str(user_id)}


@pytest.fixture
async def twilio_configured(client, owner):
    res = await client.put(
        "/api/v1/portal/integrations/twilio",
        json={"account_sid": TWILIO_SID, "auth_token": TWILIO_TOKEN, "from_number": TWILIO_FROM},
        headers=auth_headers(owner),
    )
    assert res.status_code == 200
    return owner


@pytest.fixture
def auth():
    """Identity headers for a user (or raw user id)."""
    return auth_headers


@pytest.fixture
def twilio_account() -> dict:
    """Credentials saved by the twilio_configured fixture."""
    return {"account_sid": TWILIO_SID, "auth_token": TWILIO_TOKEN, "from_number": TWILIO_FROM}
