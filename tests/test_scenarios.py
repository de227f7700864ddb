"""
End-to-end scenarios: edge -> gate -> sidecar -> secret store, in one process.

The gate talks to the real sidecar app over ASGI; the rotation coordinator
reloads the sidecar through the same IPC client the origin uses.
"""

import asyncio

import httpx
import pytest

from secure_origin.edge import InMemoryEdgeInjector
from secure_origin.errors import ConcurrentRotation, PublishFailure
from secure_origin.gate import OriginRequestGate, SidecarClient
from secure_origin.rotation import RotationCoordinator

from conftest import CALLER_TOKEN, HEADER_NAME, SIDECAR_URL, RecordingSleep


def edge_request(edge: InMemoryEdgeInjector) -> dict:
    """Headers of a request the edge would originate right now."""
    return {HEADER_NAME.lower(): edge.current_value(HEADER_NAME)}


@pytest.fixture
def edge():
    return InMemoryEdgeInjector(propagation_delay=60.0, headers={HEADER_NAME: "abc123"})


def make_coordinator(store, edge, gate, sleep, **kwargs):
    return RotationCoordinator(
        store,
        edge,
        HEADER_NAME,
        grace_duration=300.0,
        invalidators=[gate.client.invalidate],
        sleep=sleep,
        generator=lambda length: "xyz789",
        **kwargs,
    )


class TestSteadyState:
    """Requests with and without the secret header."""

    @pytest.mark.asyncio
    async def test_valid_header_accepted(self, gate):
        verdict = await gate.authorize({HEADER_NAME: "abc123"})
        assert verdict.accepted
        assert verdict.status_code == 200

    @pytest.mark.asyncio
    async def test_wrong_value_unauthorized(self, gate):
        verdict = await gate.authorize({HEADER_NAME: "wrong"})
        assert verdict.status_code == 401
        assert verdict.message == "Unauthorized"

    @pytest.mark.asyncio
    async def test_missing_header_bad_request(self, gate, authorizer):
        verdict = await gate.authorize({"x-forwarded-for": "203.0.113.7"})

        assert verdict.status_code == 400
        assert verdict.message == "Bad request"
        assert authorizer.comparisons == 0

    @pytest.mark.asyncio
    async def test_header_name_case_insensitive(self, gate):
        verdict = await gate.authorize({"x-sec-api-key": "abc123"})
        assert verdict.accepted


class TestRotationScenario:
    """A full rotation as seen by traffic from the edge."""

    @pytest.mark.asyncio
    async def test_no_rejections_across_rotation(self, gate, store, edge):
        observed = []

        async def during_grace(seconds):
            # In-flight requests still carry the old value; new ones the new value
            observed.append(await gate.authorize({HEADER_NAME: "abc123"}))
            observed.append(await gate.authorize(edge_request(edge)))

        coordinator = make_coordinator(store, edge, gate, RecordingSleep(during_grace))

        before = await gate.authorize(edge_request(edge))
        await coordinator.rotate()
        after = await gate.authorize(edge_request(edge))
        old = await gate.authorize({HEADER_NAME: "abc123"})

        assert before.accepted
        assert edge.current_value(HEADER_NAME) == "xyz789"
        assert [v.accepted for v in observed] == [True, True]
        assert after.accepted
        assert old.status_code == 401

    @pytest.mark.asyncio
    async def test_new_value_accepted_before_edge_sends_it(self, gate, store):
        results = []

        class ProbingEdge(InMemoryEdgeInjector):
            async def update_header(self, name, value):
                results.append(await gate.authorize({HEADER_NAME: value}))
                return await super().update_header(name, value)

        edge = ProbingEdge(propagation_delay=60.0, headers={HEADER_NAME: "abc123"})
        coordinator = make_coordinator(store, edge, gate, RecordingSleep())

        await coordinator.rotate()

        assert [v.accepted for v in results] == [True]


class TestSidecarUnreachable:
    """The gate fails closed when it cannot reach the sidecar."""

    @pytest.mark.asyncio
    async def test_internal_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = SidecarClient(SIDECAR_URL, CALLER_TOKEN, transport=httpx.MockTransport(refuse))
        gate = OriginRequestGate(HEADER_NAME, client)

        verdict = await gate.authorize({HEADER_NAME: "abc123"})
        await gate.aclose()

        assert not verdict.accepted
        assert verdict.status_code == 500
        assert verdict.message == "Internal error"

    @pytest.mark.asyncio
    async def test_store_outage_keeps_serving(self, gate, store):
        assert (await gate.authorize({HEADER_NAME: "abc123"})).accepted

        store.fail_next(100)
        await gate.client.invalidate()

        assert (await gate.authorize({HEADER_NAME: "abc123"})).accepted
        assert (await gate.authorize({HEADER_NAME: "wrong"})).status_code == 401


class TestConcurrentRotation:
    """Only one rotation runs at a time."""

    @pytest.mark.asyncio
    async def test_second_rotation_rejected(self, gate, store, edge):
        in_grace = asyncio.Event()
        release = asyncio.Event()

        async def hold(seconds):
            in_grace.set()
            await release.wait()

        coordinator = make_coordinator(store, edge, gate, RecordingSleep(hold))
        first = asyncio.create_task(coordinator.rotate())
        await in_grace.wait()

        with pytest.raises(ConcurrentRotation):
            await coordinator.rotate()

        accepted = await store.get_accepted()
        assert sorted(accepted.values()) == ["abc123", "xyz789"]

        release.set()
        await first


class TestEdgeFailure:
    """A failed edge update reverts the rotation."""

    @pytest.mark.asyncio
    async def test_rotation_reverted(self, gate, store, edge):
        coordinator = make_coordinator(store, edge, gate, RecordingSleep(), max_attempts=3)
        edge.fail_next(3)

        with pytest.raises(PublishFailure):
            await coordinator.rotate()

        assert (await store.get_current()).value == "abc123"
        assert await store.get_pending() is None
        assert (await gate.authorize({HEADER_NAME: "abc123"})).accepted
        assert (await gate.authorize({HEADER_NAME: "xyz789"})).status_code == 401

    @pytest.mark.asyncio
    async def test_edge_restored_after_applied_failure(self, gate, store, edge):
        coordinator = make_coordinator(store, edge, gate, RecordingSleep(), max_attempts=3)
        edge.fail_next(3, applied=True)

        with pytest.raises(PublishFailure):
            await coordinator.rotate()

        assert edge.current_value(HEADER_NAME) == "abc123"
        assert (await gate.authorize(edge_request(edge))).accepted

    @pytest.mark.asyncio
    async def test_edge_value_accepted_when_restore_fails(self, gate, store, edge):
        coordinator = make_coordinator(store, edge, gate, RecordingSleep(), max_attempts=3)
        edge.fail_next(6, applied=True)

        with pytest.raises(PublishFailure):
            await coordinator.rotate()

        assert (await gate.authorize({HEADER_NAME: "abc123"})).accepted
        assert (await gate.authorize({HEADER_NAME: "xyz789"})).accepted
        assert (await gate.authorize(edge_request(edge))).accepted
