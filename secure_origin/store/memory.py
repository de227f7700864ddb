"""
In-Memory Secret Store
======================
Process-local store for tests and local development.
"""

import asyncio
import uuid
from typing import Optional

import structlog

from ..errors import ConcurrentRotation, StoreUnavailable
from ..models import AcceptedSet, Secret, SecretStage, utcnow
from .base import SecretStore

logger = structlog.get_logger(__name__)


class InMemorySecretStore(SecretStore):
    """
    Secret store kept in process memory.

    `fail_next(n)` makes the next n operations raise StoreUnavailable, which is
    how tests exercise degraded mode and rotation retries.
    """

    def __init__(self, current: Optional[str] = None, pending: Optional[str] = None):
        self._lock = asyncio.Lock()
        self._current: Optional[Secret] = None
        self._pending: Optional[Secret] = None
        self._failures_left = 0
        self.calls = 0
        if current:
            self._current = self._make(current, SecretStage.CURRENT)
        if pending:
            self._pending = self._make(pending, SecretStage.PENDING)

    @staticmethod
    def _make(value: str, stage: SecretStage) -> Secret:
        return Secret(value=value, stage=stage, created_at=utcnow(), version=uuid.uuid4().hex)

    def fail_next(self, count: int = 1) -> None:
        self._failures_left = count

    def _touch(self) -> None:
        self.calls += 1
        if self._failures_left > 0:
            self._failures_left -= 1
            raise StoreUnavailable("In-memory store configured to fail")

    async def get_current(self) -> Optional[Secret]:
        async with self._lock:
            self._touch()
            return self._current

    async def get_pending(self) -> Optional[Secret]:
        async with self._lock:
            self._touch()
            return self._pending

    async def get_accepted(self) -> AcceptedSet:
        async with self._lock:
            self._touch()
            return AcceptedSet(current=self._current, pending=self._pending, fetched_at=utcnow())

    async def set_pending(self, value: str) -> Secret:
        async with self._lock:
            self._touch()
            if self._pending is not None:
                raise ConcurrentRotation("A pending secret already exists")
            self._pending = self._make(value, SecretStage.PENDING)
            return self._pending

    async def promote_pending(self) -> Secret:
        async with self._lock:
            self._touch()
            if self._pending is None:
                raise StoreUnavailable("No pending secret to promote")
            promoted = Secret(
                value=self._pending.value,
                stage=SecretStage.CURRENT,
                created_at=utcnow(),
                version=self._pending.version,
            )
            self._current, self._pending = promoted, None
            logger.info("secret_promoted", version=promoted.version)
            return promoted

    async def discard_pending(self) -> bool:
        async with self._lock:
            self._touch()
            existed = self._pending is not None
            self._pending = None
            return existed

    async def set_current(self, value: str) -> Secret:
        async with self._lock:
            self._touch()
            if self._current is not None:
                raise ConcurrentRotation("A current secret already exists")
            self._current = self._make(value, SecretStage.CURRENT)
            return self._current
