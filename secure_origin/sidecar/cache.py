"""
Accepted-Set Cache
==================
Keeps the sidecar off the secret store's hot path.

Readers take the current immutable snapshot without locking. A refresh builds a
new AcceptedSet and swaps the reference, so a reader sees either the old set or
the new one, never a mix. If the store is unreachable the last-known set keeps
serving and the cache reports itself degraded; it never falls back to accepting.
"""

import asyncio
import hashlib
import time
from typing import Callable, Optional, Set

import structlog

from ..errors import StoreUnavailable
from ..metrics import ACCEPTED_SET_REFRESHES, ACCEPTED_SET_SIZE, SIDECAR_DEGRADED
from ..models import AcceptedSet
from ..store.base import SecretStore

logger = structlog.get_logger(__name__)

MAX_REJECTED_ENTRIES = 10_000


def _digest(candidate: str) -> str:
    return hashlib.sha256(candidate.encode()).hexdigest()


class AcceptedSetCache:
    """
    Cached view of the secret store's accepted values.

    Args:
        store: Secret store to read from
        refresh_interval: Seconds between background refreshes
        cooldown: Minimum seconds between on-demand refreshes (cache misses)
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        store: SecretStore,
        refresh_interval: float = 15.0,
        cooldown: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.refresh_interval = refresh_interval
        self.cooldown = cooldown
        self._clock = clock

        self._snapshot = AcceptedSet()
        self._last_attempt: Optional[float] = None
        self._refresh_lock = asyncio.Lock()
        self._rejected: Set[str] = set()
        self._task: Optional[asyncio.Task] = None

        self.degraded = False
        self.refresh_count = 0

    def snapshot(self) -> AcceptedSet:
        return self._snapshot

    def is_stale(self) -> bool:
        if self._last_attempt is None:
            return True
        return self._clock() - self._last_attempt >= self.cooldown

    # ------------------------------------------------------------------
    # Rejected-candidate memo
    # ------------------------------------------------------------------

    def was_rejected(self, candidate: str) -> bool:
        return _digest(candidate) in self._rejected

    def remember_rejected(self, candidate: str) -> None:
        if len(self._rejected) >= MAX_REJECTED_ENTRIES:
            self._rejected = set()
        self._rejected.add(_digest(candidate))

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, force: bool = True) -> bool:
        """
        Reload the accepted set from the store.

        Concurrent callers are coalesced: a caller that waited on the lock while
        another refresh completed does not hit the store again unless forced.

        Returns:
            True if a fresh snapshot is in place
        """
        async with self._refresh_lock:
            if not force and not self.is_stale():
                return not self.degraded

            self._last_attempt = self._clock()
            try:
                accepted = await self.store.get_accepted()
            except StoreUnavailable as e:
                self.degraded = True
                ACCEPTED_SET_REFRESHES.labels(result="failure").inc()
                SIDECAR_DEGRADED.set(1)
                logger.warning(
                    "accepted_set_refresh_failed",
                    mode="degraded",
                    serving_count=len(self._snapshot),
                    error=e.message,
                )
                return False

            self._snapshot = accepted
            self._rejected = set()
            self.degraded = False
            self.refresh_count += 1
            ACCEPTED_SET_REFRESHES.labels(result="success").inc()
            ACCEPTED_SET_SIZE.set(len(accepted))
            SIDECAR_DEGRADED.set(0)
            logger.info(
                "accepted_set_refreshed",
                accepted_count=len(accepted),
                pending=accepted.pending is not None,
            )
            return True

    async def refresh_if_stale(self) -> bool:
        """Refresh only if the cooldown since the last attempt has elapsed."""
        if not self.is_stale():
            return False
        return await self.refresh(force=False)

    async def invalidate(self) -> bool:
        """Drop the cached view and reload it now."""
        self._last_attempt = None
        return await self.refresh(force=True)

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        while True:
            try:
                await self.refresh(force=True)
            except Exception as e:
                # Keep the loop alive; the last-known set keeps serving
                self.degraded = True
                ACCEPTED_SET_REFRESHES.labels(result="failure").inc()
                SIDECAR_DEGRADED.set(1)
                logger.error(
                    "accepted_set_refresh_failed",
                    mode="degraded",
                    serving_count=len(self._snapshot),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
            await asyncio.sleep(self.refresh_interval)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
