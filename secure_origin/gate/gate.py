"""
Origin Request Gate
===================
The single enforcement point inside the origin process. Nothing downstream
runs until authorize() returns an accepted verdict.

Response taxonomy (fixed, never echoes any secret):
    400 {"message": "Bad request"}     missing or malformed header
    401 {"message": "Unauthorized"}    secret not accepted
    500 {"message": "Internal error"}  sidecar unreachable, timed out or failing
"""

import json
from typing import Any, Dict, Mapping, Optional

import structlog
from starlette.responses import JSONResponse

from ..config import Settings
from ..errors import ConfigurationError, IpcFailure
from ..metrics import GATE_DECISIONS, IPC_LATENCY, record_verdict
from ..models import AuthorizationHeader, RejectReason, Verdict
from .client import SidecarClient

logger = structlog.get_logger(__name__)


def find_header(headers: Optional[Mapping[str, Any]], name: str) -> Optional[AuthorizationHeader]:
    """Case-insensitive header lookup over any mapping."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return AuthorizationHeader(name=name, value="" if value is None else str(value))
    return None


class OriginRequestGate:
    """
    Authorizes inbound requests by delegating secret checks to the sidecar.

    Fails closed: any IPC problem is a rejection, never an acceptance.
    """

    def __init__(self, header_name: str, client: SidecarClient):
        if not header_name:
            raise ConfigurationError("Gate requires a configured header name")
        self.header_name = header_name
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings, transport=None) -> "OriginRequestGate":
        header_name = settings.require_header_name()
        return cls(header_name, SidecarClient.from_settings(settings, transport=transport))

    async def authorize(self, headers: Optional[Mapping[str, Any]]) -> Verdict:
        verdict = await self._decide(headers)
        record_verdict(GATE_DECISIONS, verdict)
        return verdict

    async def _decide(self, headers: Optional[Mapping[str, Any]]) -> Verdict:
        header = find_header(headers, self.header_name)
        if header is None or not header.value.strip():
            logger.info("gate_rejected", reason=RejectReason.MISSING_HEADER.value)
            return Verdict.reject(RejectReason.MISSING_HEADER)

        try:
            with IPC_LATENCY.time():
                verdict = await self.client.check(header.value)
        except IpcFailure as e:
            logger.error("gate_ipc_failure", error=e.message)
            return Verdict.reject(RejectReason.IPC_FAILURE)
        except Exception:
            logger.exception("gate_ipc_failure")
            return Verdict.reject(RejectReason.IPC_FAILURE)

        if not verdict.accepted:
            logger.warning("gate_rejected", reason=verdict.reason.value)
        return verdict

    async def aclose(self) -> None:
        await self.client.aclose()


def rejection_response(verdict: Verdict) -> JSONResponse:
    return JSONResponse(status_code=verdict.status_code, content={"message": verdict.message})


def serverless_response(verdict: Verdict) -> Dict[str, Any]:
    return {
        "statusCode": verdict.status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"message": verdict.message}),
    }
