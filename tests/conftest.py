"""
Shared fixtures for the secure-origin test suite.
"""

import httpx
import pytest
import pytest_asyncio

from secure_origin.gate import OriginRequestGate, SidecarClient
from secure_origin.sidecar import (
    AcceptedSetCache,
    SidecarAuthorizer,
    StaticTokenAttestation,
    create_sidecar_app,
)
from secure_origin.store import InMemorySecretStore

HEADER_NAME = "X-Sec-Api-Key"
CALLER_TOKEN = "process-session-token"
SIDECAR_URL = "http://127.0.0.1:3579"


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that returns immediately and records every delay."""

    def __init__(self, hook=None):
        self.calls = []
        self.hook = hook

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.hook is not None:
            await self.hook(seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySecretStore(current="abc123")


@pytest.fixture
def cache(store, clock):
    return AcceptedSetCache(store, refresh_interval=15.0, cooldown=15.0, clock=clock)


@pytest.fixture
def authorizer(cache):
    return SidecarAuthorizer(cache, StaticTokenAttestation(CALLER_TOKEN))


@pytest.fixture
def sidecar_app(authorizer, cache):
    return create_sidecar_app(authorizer, cache)


@pytest_asyncio.fixture
async def gate(sidecar_app):
    """Gate wired to the in-process sidecar app over ASGI."""
    client = SidecarClient(
        SIDECAR_URL,
        CALLER_TOKEN,
        timeout=2.0,
        transport=httpx.ASGITransport(app=sidecar_app),
    )
    gate = OriginRequestGate(HEADER_NAME, client)
    yield gate
    await gate.aclose()
