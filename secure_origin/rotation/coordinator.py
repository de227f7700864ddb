"""
Rotation Coordinator
====================
Replaces the header secret with zero authorization downtime.

States: IDLE -> GENERATING -> PUBLISHING -> GRACE -> FINALIZING -> IDLE

Publishing order:
1. write the new value as pending in the secret store
2. tell the sidecars to reload, so the origin accepts the new value
3. push the new value to the edge injector

The origin therefore accepts the new value before the edge can send it, and the
old value stays current (accepted) until the grace window, which starts at the
edge acknowledgement and exceeds the edge propagation delay, has elapsed.

If the edge push cannot be completed the pending value is discarded, so the
current secret never becomes a value the edge did not learn.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Type

import structlog

from ..errors import (
    ConcurrentRotation,
    ConfigurationError,
    PublishFailure,
    SecureOriginError,
    StoreUnavailable,
)
from ..edge.base import EdgeAck, EdgeInjector
from ..metrics import ROTATIONS
from ..models import RotationState, RotationWindow, Secret, utcnow
from ..retry import RetryExhausted, retry_with_backoff
from ..store.base import SecretStore
from .generator import generate_secret

logger = structlog.get_logger(__name__)

Invalidator = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class RotationResult:
    """Outcome of a completed rotation. Never carries secret values."""
    version: Optional[str]
    started_at: datetime
    grace_started_at: datetime
    completed_at: datetime
    resumed: bool = False


class RotationCoordinator:
    """
    Singleton rotation state machine for one deployment.

    Args:
        store: Secret store holding current/pending
        edge: Edge injector forwarding the header
        header_name: Custom header the edge appends
        grace_duration: Seconds both secrets stay accepted; must exceed the
            edge propagation delay
        invalidators: Async callables that make sidecars reload their accepted set
        secret_length: Length of generated secrets
        max_attempts / base_delay / max_delay: Backoff for store and edge calls
        acceptance_delay: Seconds to wait after storing pending before the edge
            push, for sidecars that are only reached by their refresh interval
        sleep: Awaitable sleep, injectable for tests
    """

    def __init__(
        self,
        store: SecretStore,
        edge: EdgeInjector,
        header_name: str,
        grace_duration: float = 300.0,
        invalidators: Sequence[Invalidator] = (),
        secret_length: int = 64,
        max_attempts: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        acceptance_delay: float = 0.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        generator: Callable[[int], str] = generate_secret,
    ):
        if not header_name:
            raise ConfigurationError("Rotation coordinator requires a header name")
        if grace_duration <= edge.propagation_delay:
            raise ConfigurationError(
                "Grace duration must exceed the edge propagation delay "
                f"({grace_duration}s <= {edge.propagation_delay}s)"
            )
        self.store = store
        self.edge = edge
        self.header_name = header_name
        self.grace_duration = grace_duration
        self.invalidators: List[Invalidator] = list(invalidators)
        self.secret_length = secret_length
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.acceptance_delay = acceptance_delay
        self._sleep = sleep
        self._generate = generator

        self._lock = asyncio.Lock()
        self._state = RotationState.IDLE
        self.window: Optional[RotationWindow] = None
        self.transitions: List[RotationState] = []

    @property
    def state(self) -> RotationState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    @property
    def stale_pending_after(self) -> timedelta:
        # A pending value older than this cannot belong to a live rotation
        return timedelta(seconds=2 * self.grace_duration)

    def add_invalidator(self, invalidator: Invalidator) -> None:
        self.invalidators.append(invalidator)

    def _set_state(self, state: RotationState) -> None:
        if state is self._state:
            return
        logger.info("rotation_state_changed", previous=self._state.value, state=state.value)
        self._state = state
        self.transitions.append(state)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _retry(
        self,
        func: Callable[..., Awaitable[Any]],
        *args,
        operation: str,
        retryable: Tuple[Type[BaseException], ...] = (StoreUnavailable,),
    ) -> Any:
        return await retry_with_backoff(
            func,
            *args,
            operation=operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            retryable_exceptions=retryable,
            sleep=self._sleep,
        )

    async def _store_call(self, func: Callable[..., Awaitable[Any]], *args, operation: str) -> Any:
        try:
            return await self._retry(func, *args, operation=operation)
        except RetryExhausted:
            raise StoreUnavailable(f"Secret store {operation} failed after {self.max_attempts} attempts")

    async def _push_edge(self, value: str) -> EdgeAck:
        try:
            return await self._retry(
                self.edge.update_header,
                self.header_name,
                value,
                operation="edge_update_header",
                retryable=(PublishFailure,),
            )
        except RetryExhausted:
            raise PublishFailure(f"Edge update failed after {self.max_attempts} attempts")

    async def invalidate_sidecars(self) -> None:
        """Ask every registered sidecar to reload. Failures are logged, not raised."""
        for invalidator in self.invalidators:
            try:
                await invalidator()
            except Exception as e:
                logger.warning(
                    "sidecar_invalidation_failed",
                    invalidator=getattr(invalidator, "__qualname__", repr(invalidator)),
                    error_type=type(e).__name__,
                )

    def _acquire_or_reject(self) -> None:
        if self._lock.locked():
            logger.warning("rotation_rejected_concurrent", state=self._state.value)
            raise ConcurrentRotation()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _create_pending(self) -> Tuple[Secret, bool]:
        """GENERATING, then the store write of PUBLISHING. Returns (pending, resumed)."""
        current = await self._store_call(self.store.get_current, operation="get_current")
        if current is None:
            raise StoreUnavailable("No current secret; bootstrap before rotating")

        existing = await self._store_call(self.store.get_pending, operation="get_pending")
        if existing is not None:
            if utcnow() - existing.created_at < self.stale_pending_after:
                logger.warning("rotation_rejected_concurrent", reason="pending_in_store")
                raise ConcurrentRotation("A pending secret from another rotation is in the store")
            # Left behind by an interrupted run; the edge may already send it
            logger.warning("rotation_resumed", version=existing.version)
            self._set_state(RotationState.PUBLISHING)
            return existing, True

        self._set_state(RotationState.GENERATING)
        value = self._generate(self.secret_length)

        self._set_state(RotationState.PUBLISHING)
        pending = await self._store_call(self.store.set_pending, value, operation="set_pending")
        logger.info("rotation_pending_stored", version=pending.version)
        return pending, False

    async def _publish(self, pending: Secret) -> EdgeAck:
        """Sidecar reload then edge push. Reverts the store write on failure."""
        self._set_state(RotationState.PUBLISHING)
        await self.invalidate_sidecars()
        if self.acceptance_delay > 0:
            # Sidecars without an invalidation channel pick pending up on their next refresh
            await self._sleep(self.acceptance_delay)
        try:
            ack = await self._push_edge(pending.value)
        except PublishFailure:
            logger.error("rotation_publish_failed", version=pending.version)
            await self._revert()
            raise
        logger.info("rotation_edge_acknowledged", version=pending.version,
                    acknowledged_at=ack.acknowledged_at.isoformat())
        return ack

    async def _revert(self) -> None:
        """
        Put the edge back on the current secret, then drop pending.

        A failed push may still have reached the edge, so pending is only
        discarded once the edge acknowledges current again. If that cannot be
        confirmed pending stays in the store, accepted, for the next run to resume.
        """
        try:
            current = await self._store_call(self.store.get_current, operation="get_current")
            if current is None:
                raise StoreUnavailable("No current secret to restore on the edge")
            await self._push_edge(current.value)
        except (PublishFailure, StoreUnavailable) as e:
            logger.error("rotation_revert_failed", error=e.message, pending_kept=True)
            await self.invalidate_sidecars()
            return

        # Requests signed with pending may still be in flight
        if self.edge.propagation_delay > 0:
            await self._sleep(self.edge.propagation_delay)

        try:
            await self._store_call(self.store.discard_pending, operation="discard_pending")
        except StoreUnavailable:
            # Pending stays accepted but is never promoted; the next run resumes or replaces it
            logger.error("rotation_revert_failed", pending_kept=True)
        else:
            logger.warning("rotation_reverted", restored_version=current.version)
        await self.invalidate_sidecars()

    async def _grace(self, pending: Secret, started_at: datetime) -> RotationWindow:
        self._set_state(RotationState.GRACE)
        self.window = RotationWindow(
            started_at=started_at,
            grace_duration=timedelta(seconds=self.grace_duration),
            pending_secret=pending,
        )
        remaining = (self.window.ends_at - utcnow()).total_seconds()
        if remaining > 0:
            await self._sleep(remaining)
        return self.window

    async def _finalize(self) -> Secret:
        self._set_state(RotationState.FINALIZING)
        try:
            promoted = await self._store_call(self.store.promote_pending, operation="promote_pending")
        except StoreUnavailable:
            # Both values remain accepted; nothing the edge may send is dropped
            logger.error("rotation_finalize_failed")
            raise
        await self.invalidate_sidecars()
        return promoted

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def rotate(self) -> RotationResult:
        """
        Run one full rotation.

        Raises:
            ConcurrentRotation: Another rotation is in flight
            StoreUnavailable: The store could not be read or written
            PublishFailure: The edge push failed; the rotation was reverted, or
                left pending if the edge could not be put back on current
        """
        try:
            result = await self._rotate()
        except SecureOriginError as e:
            ROTATIONS.labels(outcome=e.reason or "error").inc()
            raise
        ROTATIONS.labels(outcome="completed").inc()
        return result

    async def _rotate(self) -> RotationResult:
        self._acquire_or_reject()
        async with self._lock:
            started_at = utcnow()
            logger.info("rotation_started")
            try:
                pending, resumed = await self._create_pending()
                ack = await self._publish(pending)
                window = await self._grace(pending, ack.acknowledged_at)
                promoted = await self._finalize()
            finally:
                self.window = None
                self._set_state(RotationState.IDLE)

            result = RotationResult(
                version=promoted.version,
                started_at=started_at,
                grace_started_at=window.started_at,
                completed_at=utcnow(),
                resumed=resumed,
            )
            logger.info("rotation_completed", version=result.version, resumed=resumed)
            return result

    async def bootstrap(self) -> Optional[Secret]:
        """
        Seed the first secret on a fresh deployment. No-op if one exists.

        The edge is updated before the store here: until a current secret
        exists the origin rejects everything anyway. If another coordinator
        seeds the store in between, its value wins and is pushed to the edge.
        """
        self._acquire_or_reject()
        async with self._lock:
            current = await self._store_call(self.store.get_current, operation="get_current")
            if current is not None:
                return None

            self._set_state(RotationState.GENERATING)
            try:
                value = self._generate(self.secret_length)
                self._set_state(RotationState.PUBLISHING)
                await self._push_edge(value)
                try:
                    seeded = await self._store_call(self.store.set_current, value, operation="set_current")
                except ConcurrentRotation:
                    winner = await self._store_call(self.store.get_current, operation="get_current")
                    if winner is None:
                        raise
                    await self._push_edge(winner.value)
                    await self.invalidate_sidecars()
                    logger.warning("rotation_bootstrap_lost_race", version=winner.version)
                    return None
                await self.invalidate_sidecars()
            finally:
                self._set_state(RotationState.IDLE)

            logger.info("rotation_bootstrapped", version=seeded.version)
            return seeded

    # Step-wise operations used by the managed rotation protocol

    async def create_step(self) -> Secret:
        self._acquire_or_reject()
        async with self._lock:
            try:
                existing = await self._store_call(self.store.get_pending, operation="get_pending")
                if existing is not None:
                    return existing
                pending, _ = await self._create_pending()
                return pending
            finally:
                self._set_state(RotationState.IDLE)

    async def publish_step(self) -> Optional[EdgeAck]:
        self._acquire_or_reject()
        async with self._lock:
            try:
                pending = await self._store_call(self.store.get_pending, operation="get_pending")
                if pending is None:
                    logger.warning("rotation_step_without_pending", step="publish")
                    return None
                return await self._publish(pending)
            finally:
                self._set_state(RotationState.IDLE)

    async def test_step(self) -> bool:
        """Check the pending value is in the store and the sidecars have reloaded."""
        pending = await self._store_call(self.store.get_pending, operation="get_pending")
        if pending is None:
            return False
        await self.invalidate_sidecars()
        return True

    async def finish_step(self) -> Optional[Secret]:
        self._acquire_or_reject()
        async with self._lock:
            try:
                pending = await self._store_call(self.store.get_pending, operation="get_pending")
                if pending is None:
                    return None
                # No acknowledgement time survives between steps; wait a full window
                await self._grace(pending, utcnow())
                return await self._finalize()
            finally:
                self.window = None
                self._set_state(RotationState.IDLE)
