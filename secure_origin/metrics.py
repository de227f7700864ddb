"""
Prometheus Metrics
==================
Counters and gauges for the gate, the sidecar and the rotation coordinator.

Labels carry reasons and outcomes only, never secret values or fingerprints.

Usage:
    from secure_origin.metrics import metrics_app

    app.mount("/metrics", metrics_app())
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, make_asgi_app

from .models import Verdict

REGISTRY = CollectorRegistry()

GATE_DECISIONS = Counter(
    name="secure_origin_gate_decisions_total",
    documentation="Origin gate verdicts",
    labelnames=["outcome", "reason"],
    registry=REGISTRY,
)

IPC_LATENCY = Histogram(
    name="secure_origin_ipc_duration_seconds",
    documentation="Time spent on gate to sidecar calls",
    buckets=[0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
    registry=REGISTRY,
)

SIDECAR_CHECKS = Counter(
    name="secure_origin_sidecar_checks_total",
    documentation="Sidecar authorization decisions",
    labelnames=["outcome", "reason"],
    registry=REGISTRY,
)

ACCEPTED_SET_REFRESHES = Counter(
    name="secure_origin_accepted_set_refreshes_total",
    documentation="Accepted-set reloads from the secret store",
    labelnames=["result"],
    registry=REGISTRY,
)

ACCEPTED_SET_SIZE = Gauge(
    name="secure_origin_accepted_set_size",
    documentation="Number of secrets the sidecar currently accepts",
    registry=REGISTRY,
)

SIDECAR_DEGRADED = Gauge(
    name="secure_origin_sidecar_degraded",
    documentation="1 while the sidecar serves a last-known set because the store is down",
    registry=REGISTRY,
)

ROTATIONS = Counter(
    name="secure_origin_rotations_total",
    documentation="Rotation attempts by outcome",
    labelnames=["outcome"],
    registry=REGISTRY,
)


def record_verdict(counter: Counter, verdict: Verdict) -> None:
    if verdict.accepted:
        counter.labels(outcome="accepted", reason="").inc()
    else:
        counter.labels(outcome="rejected", reason=verdict.reason.value).inc()


def metrics_app():
    """ASGI app exposing the secure-origin registry."""
    return make_asgi_app(registry=REGISTRY)
