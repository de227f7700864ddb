"""
Origin Gate Middleware
======================
Starlette middleware that puts the origin request gate in front of an app.

Usage:
    from secure_origin.gate import OriginGateMiddleware, OriginRequestGate

    gate = OriginRequestGate.from_settings(Settings.from_env())
    app.add_middleware(OriginGateMiddleware, gate=gate)
"""

from typing import Optional, Set

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .gate import OriginRequestGate, rejection_response


class OriginGateMiddleware(BaseHTTPMiddleware):
    """
    Blocks every request that does not carry an accepted secret header.

    Accepted requests reach the app unmodified.
    """

    def __init__(self, app, gate: OriginRequestGate, public_paths: Optional[Set[str]] = None):
        super().__init__(app)
        self.gate = gate
        self.public_paths = public_paths or set()

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.public_paths:
            return await call_next(request)

        verdict = await self.gate.authorize(request.headers)
        if not verdict.accepted:
            return rejection_response(verdict)

        return await call_next(request)
