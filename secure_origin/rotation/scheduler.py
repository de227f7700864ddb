"""
Rotation Scheduler
==================
Runs the coordinator on a fixed interval (default once per day).
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from ..errors import ConcurrentRotation, PublishFailure, StoreUnavailable
from .coordinator import RotationCoordinator, RotationResult

logger = structlog.get_logger(__name__)


class RotationScheduler:
    """
    Timer-driven rotation loop.

    Rotation failures are logged and the loop carries on; the system stays on its
    last-known-good secrets until the next attempt.
    """

    def __init__(
        self,
        coordinator: RotationCoordinator,
        interval: float = 24 * 3600.0,
        rotate_on_start: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.coordinator = coordinator
        self.interval = interval
        self.rotate_on_start = rotate_on_start
        self._sleep = sleep
        self._stopped = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.completed = 0
        self.failed = 0

    async def run_once(self) -> Optional[RotationResult]:
        try:
            result = await self.coordinator.rotate()
        except ConcurrentRotation:
            logger.warning("scheduled_rotation_skipped", reason="concurrent_rotation")
            return None
        except (PublishFailure, StoreUnavailable) as e:
            self.failed += 1
            logger.error("scheduled_rotation_failed", reason=e.reason, error=e.message)
            return None
        self.completed += 1
        return result

    async def bootstrap(self) -> None:
        try:
            await self.coordinator.bootstrap()
        except (ConcurrentRotation, PublishFailure, StoreUnavailable) as e:
            logger.error("bootstrap_failed", reason=e.reason, error=e.message)

    async def run(self) -> None:
        await self.bootstrap()
        if self.rotate_on_start and not self._stopped.is_set():
            await self.run_once()
        while not self._stopped.is_set():
            await self._sleep(self.interval)
            if self._stopped.is_set():
                break
            await self.run_once()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stopped.clear()
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopped.set()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
