"""Shared pytest fixtures for the test suite"""
import os

# settings are read once per process; they must be in place before sarvasync is imported
os.environ.update({
    "ENVIRONMENT": "test",
    "LOG_LEVEL": "WARNING",
    "DATABASE_URL": "sqlite+aiosqlite://",
    "ACCESS_TOKEN_SECRET": "test-access-secret",
    "REFRESH_TOKEN_SECRET": "test-refresh-secret",
    "MAGIC_LINK_SECRET": "test-magic-link-secret",
    "REFRESH_TOKEN_HASH_ROUNDS": "4",
    "OAUTH_TOKEN_ENCRYPTION_KEY": "0123456789abcdef" * 4,
    "GOOGLE_CLIENT_ID": "test-client-id",
    "GOOGLE_CLIENT_SECRET": "test-client-secret",
    "SERVER_URL": "http://api.test",
    "CORS_ORIGIN": "http://app.test",
    "SMTP_HOST": "",
    "ANALYTICS_SYNC_ENABLED": "false",
})

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from sarvasync.errors import NoResourceError
from sarvasync.infrastructure import database, redis_cache
from sarvasync.infrastructure.provider import (
    DailyMetrics, ProviderClient, ProviderCredentials, ProviderProfile, ProviderTokens, TokenRefreshed,
)
from sarvasync.infrastructure.vault import get_vault
from sarvasync.main import app
from sarvasync.models.linked_account import AuthProvider
from sarvasync.routers.auth_router import get_email_sender
from sarvasync.routers.connect_router import get_provider_client


def make_engine():
    # one shared connection so every session sees the same in-memory database
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


class FakeProviderClient(ProviderClient):
    """In-memory stand-in for the Google client; behaviour is driven by its attributes."""

    provider = AuthProvider.GOOGLE

    def __init__(self):
        self.profile: Optional[ProviderProfile] = ProviderProfile(
            account_id="UC-test-channel",
            display_name="Test Channel",
            username="@testchannel",
            follower_count=120,
            email="creator@example.com",
            name="Test Creator",
            avatar_url="https://img.example.com/avatar.png",
            platform_data={"channelId": "UC-test-channel"},
        )
        self.metrics: List[DailyMetrics] = [
            DailyMetrics(day=date(2024, 5, 29), views=100, likes=5, comments=3, shares=2, raw={"day": "2024-05-29"}),
            DailyMetrics(day=date(2024, 5, 30), views=0, likes=0, comments=0, shares=0, raw={"day": "2024-05-30"}),
        ]
        self.followers = 150
        self.follower_error: Optional[Exception] = None
        self.failing_tokens = set()
        self.rotate_to: Optional[str] = None
        self.metric_windows = []

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/o/oauth2/auth?{urlencode({'state': state, 'access_type': 'offline', 'prompt': 'consent'})}"

    async def exchange_code(self, code: str) -> ProviderTokens:
        return ProviderTokens(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            scope="openid https://www.googleapis.com/auth/youtube.readonly",
        )

    async def fetch_profile(self, credentials: ProviderCredentials) -> ProviderProfile:
        if self.profile is None:
            raise NoResourceError()
        return self.profile

    async def fetch_metrics(self, credentials: ProviderCredentials, start: date, end: date) -> List[DailyMetrics]:
        self.metric_windows.append((start, end))
        if credentials.access_token in self.failing_tokens:
            raise RuntimeError("quota exceeded")
        if self.rotate_to:
            await credentials.apply_refresh(TokenRefreshed(access_token=self.rotate_to))
        return list(self.metrics)

    async def fetch_follower_count(self, credentials: ProviderCredentials) -> int:
        if self.follower_error:
            raise self.follower_error
        return self.followers

    async def upload_media(self, credentials: ProviderCredentials, path: str, metadata: Dict) -> str:
        return "video-1"


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    redis_cache.set_redis(client)
    yield client
    redis_cache.set_redis(None)


@pytest.fixture
async def db(fake_redis):
    """Fresh in-memory database for async (service level) tests."""
    engine = make_engine()
    database.set_engine(engine)
    await database.init_db()
    yield engine
    await engine.dispose()
    database.set_engine(None)


@pytest.fixture
async def session(db):
    async with database.get_session() as s:
        yield s


@pytest.fixture
def vault():
    return get_vault()


@pytest.fixture
def provider():
    return FakeProviderClient()


@pytest.fixture
def outbox():
    """Magic links captured instead of being emailed: list of (email, link)."""
    return []


@pytest.fixture
def client(fake_redis, provider, outbox):
    # the app lifespan creates the tables and disposes this engine on exit
    database.set_engine(make_engine())

    async def capture(to_email: str, link: str) -> None:
        outbox.append((to_email, link))

    app.dependency_overrides[get_email_sender] = lambda: capture
    app.dependency_overrides[get_provider_client] = lambda: provider
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def token_from_link(link: str) -> str:
    return parse_qs(urlparse(link).query)["token"][0]


def login(client: TestClient, outbox: list, email: str = "user@example.com"):
    """Run the magic-link flow over HTTP and return (access_token, refresh_token)."""
    resp = client.post("/auth/magiclink", json={"email": email})
    assert resp.status_code == 200
    token = token_from_link(outbox[-1][1])
    resp = client.get("/auth/magiclink/callback", params={"token": token}, follow_redirects=False)
    assert resp.status_code == 302
    access = token_from_link(resp.headers["location"])
    return access, resp.cookies["refreshToken"]


def bearer(access_token: str) -> dict:
    return {"Authorization": f"Bearer {access_token}"}
