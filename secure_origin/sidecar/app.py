"""
Sidecar HTTP App
================
Loopback-only IPC surface used by the origin request gate.

    POST /check       {"candidate": "<header value>"}  + X-Caller-Token
    POST /invalidate  reload the accepted set          + X-Caller-Token
    GET  /health      status and accepted-set size (never values)
    GET  /metrics     Prometheus exposition

The candidate travels in the JSON body, never in the URL, so it cannot end up
in access logs or caches keyed on the request line.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from ..config import CALLER_TOKEN_HEADER
from ..metrics import metrics_app
from ..models import RejectReason, Verdict
from .authorizer import SidecarAuthorizer
from .cache import AcceptedSetCache

logger = structlog.get_logger(__name__)


class CheckRequest(BaseModel):
    candidate: str


def verdict_response(verdict: Verdict) -> JSONResponse:
    content = {"accepted": verdict.accepted}
    if not verdict.accepted:
        content["reason"] = verdict.reason.value
    return JSONResponse(status_code=verdict.status_code, content=content)


def create_sidecar_app(
    authorizer: SidecarAuthorizer,
    cache: Optional[AcceptedSetCache] = None,
    manage_cache: bool = False,
) -> FastAPI:
    """
    Build the sidecar FastAPI app.

    Args:
        authorizer: Decision logic
        cache: Accepted-set cache (defaults to the authorizer's)
        manage_cache: Start/stop the cache refresh loop with the app lifespan
    """
    cache = cache or authorizer.cache

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_cache:
            await cache.refresh()
            cache.start()
        try:
            yield
        finally:
            if manage_cache:
                await cache.stop()

    app = FastAPI(
        title="secure-origin-sidecar",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.mount("/metrics", metrics_app())

    @app.post("/check")
    async def check(request: Request) -> JSONResponse:
        token = request.headers.get(CALLER_TOKEN_HEADER)
        try:
            payload: Optional[CheckRequest] = CheckRequest.model_validate_json(await request.body())
        except ValidationError:
            payload = None

        try:
            verdict = await authorizer.check(payload.candidate if payload else None, token)
        except Exception:
            logger.exception("sidecar_check_failed")
            verdict = Verdict.reject(RejectReason.IPC_FAILURE)

        if payload is None and verdict.reason is RejectReason.MISSING_HEADER:
            verdict = Verdict.reject(RejectReason.MALFORMED_REQUEST)
        return verdict_response(verdict)

    @app.post("/invalidate")
    async def invalidate(request: Request) -> JSONResponse:
        if not authorizer.attestation.verify(request.headers.get(CALLER_TOKEN_HEADER)):
            logger.warning("sidecar_untrusted_caller", path="/invalidate")
            return verdict_response(Verdict.reject(RejectReason.UNTRUSTED_CALLER))
        refreshed = await cache.invalidate()
        return JSONResponse(status_code=200, content={"refreshed": refreshed})

    @app.get("/health")
    async def health() -> JSONResponse:
        snapshot = cache.snapshot()
        status = "degraded" if cache.degraded or snapshot.is_empty else "healthy"
        return JSONResponse(
            status_code=200 if not snapshot.is_empty else 503,
            content={"status": status, "accepted_count": len(snapshot)},
        )

    return app
