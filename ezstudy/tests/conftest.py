"""Shared fixtures: fake providers and an in-process API client."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ezstudy.config import Settings, get_settings
from ezstudy.mailer import get_mailer
from ezstudy.main import app
from ezstudy.providers import Provider, ProviderGateway, get_gateway
from ezstudy.sessions import InMemorySessionStore, get_session_store
from ezstudy.storage import LocalImageStore, get_image_store


class FakeProvider(Provider):
    """Records calls; returns `reply` or raises `error`."""

    def __init__(self, name: str, reply: str = "ok", error: Exception | None = None):
        super().__init__(api_key="test-key", model=f"{name}-model")
        self.name = name
        self.reply = reply
        self.error = error
        self.calls = []

    async def complete(self, messages, temperature):
        self.calls.append((list(messages), temperature))
        if self.error is not None:
            raise self.error
        return self.reply


class FakeMailer:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.sent = []

    def send(self, contact):
        if self.error is not None:
            raise self.error
        self.sent.append(contact)


@pytest.fixture
def primary():
    return FakeProvider("gemini", reply="primary answer")


@pytest.fixture
def secondary():
    return FakeProvider("groq", reply="fallback answer")


@pytest.fixture
def gateway(primary, secondary):
    return ProviderGateway(primary, secondary, timeout=5)


@pytest.fixture
def store():
    return InMemorySessionStore(ttl_seconds=3600)


@pytest.fixture
def settings():
    return Settings(file_char_budget=3000)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest_asyncio.fixture
async def client(gateway, store, settings, mailer, tmp_path):
    image_store = LocalImageStore(str(tmp_path / "uploads"))
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_session_store] = lambda: store
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_image_store] = lambda: image_store
    app.dependency_overrides[get_mailer] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
