"""
Shared fixtures: in-memory SQLite database, recording email sender, mocked
Redis, user/org factories and an HTTP client bound to a fresh app.
"""

from __future__ import annotations

from typing import Optional
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.auth import create_jwt, hash_password
from app.core.config import Settings
from app.core.database import Database
from app.core.email import EmailDeliveryError, EmailMessage, EmailSender
from app.core.redis import RevocationList
from app.main import create_app
from app.models.organization import Organization
from app.models.user import User


class RecordingEmailSender(EmailSender):
    """Keeps every delivered message; can be told to refuse or crash on recipients."""

    def __init__(self):
        super().__init__("Nuclio <noreply@nuclio.test>", timeout_seconds=1.0)
        self.sent: list[EmailMessage] = []
        self.attempts: list[EmailMessage] = []
        self.fail_all = False
        self.fail_for: set[str] = set()
        self.crash_for: set[str] = set()

    async def _deliver(self, message: EmailMessage) -> None:
        self.attempts.append(message)
        if self.fail_all or message.to in self.fail_for:
            raise EmailDeliveryError(f"provider refused {message.to}")
        if message.to in self.crash_for:
            raise RuntimeError(f"client blew up on {message.to}")
        self.sent.append(message)

    def to(self, address: str) -> list[EmailMessage]:
        return [m for m in self.sent if m.to == address]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        database_url="sqlite+aiosqlite:///:memory:",
        secret_key="test-secret-key",
        auth_mode="session",
        email_backend="console",
        base_url="http://test",
        cron_secret="cron-secret",
        admin_emails=["admin@nuclio.test"],
        feedback_recipient="feedback@nuclio.test",
        timezone="",
    )


@pytest.fixture
async def database(settings: Settings):
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
async def session(database: Database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def fake_redis():
    """No test talks to a real Redis; nothing is revoked unless a test says so."""
    redis = AsyncMock()
    redis.exists = AsyncMock(return_value=0)
    redis.setex = AsyncMock()
    return redis


@pytest.fixture
def revocations(fake_redis) -> RevocationList:
    return RevocationList(fake_redis)


@pytest.fixture
def app(settings: Settings, database: Database, email_sender: RecordingEmailSender, revocations: RevocationList):
    return create_app(settings, database=database, email_sender=email_sender, revocations=revocations)


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_org(session):
    async def _make(name: str = "Acme", slug: Optional[str] = None) -> Organization:
        org = Organization(name=name, slug=slug)
        session.add(org)
        await session.commit()
        return org

    return _make


@pytest.fixture
def make_user(session):
    async def _make(
        email: str,
        org: Optional[Organization] = None,
        name: Optional[str] = None,
        password: Optional[str] = None,
    ) -> User:
        user = User(
            email=email.lower(),
            name=name,
            org_id=org.id if org else None,
            password_hash=hash_password(password) if password else None,
        )
        session.add(user)
        await session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers(settings: Settings):
    def _headers(user: User) -> dict[str, str]:
        token, _ = create_jwt(user, settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
