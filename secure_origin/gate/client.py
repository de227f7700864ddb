"""
Sidecar IPC Client
==================
Single short-timeout call from the origin process to the local sidecar.

There are no retries: the gate answers within the request's own budget and any
failure is reported as IpcFailure so the gate can fail closed.
"""

from typing import Optional

import httpx
import structlog

from ..config import CALLER_TOKEN_HEADER, Settings
from ..errors import IpcFailure
from ..models import RejectReason, Verdict

logger = structlog.get_logger(__name__)

_UNAUTHORIZED_REASONS = {RejectReason.INVALID_SECRET, RejectReason.UNTRUSTED_CALLER}
_BAD_REQUEST_REASONS = {RejectReason.MISSING_HEADER, RejectReason.MALFORMED_REQUEST}


def _reason_from(response: httpx.Response, allowed: set, default: RejectReason) -> RejectReason:
    try:
        reason = RejectReason(response.json().get("reason"))
    except (ValueError, AttributeError):
        return default
    return reason if reason in allowed else default


class SidecarClient:
    """
    Async HTTP client for the sidecar's loopback IPC surface.

    Features:
    - Caller trust token sent on every call.
    - Candidate carried in the JSON body, never in the URL.
    - All transport errors and unexpected statuses mapped to IpcFailure.
    """

    def __init__(
        self,
        base_url: str,
        caller_token: str,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout),
            headers={
                "User-Agent": "secure-origin-gate",
                "Accept": "application/json",
                CALLER_TOKEN_HEADER: caller_token or "",
            },
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "SidecarClient":
        return cls(
            settings.sidecar_url,
            settings.caller_token,
            timeout=settings.ipc_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def _map_exception(self, exc: Exception) -> IpcFailure:
        if isinstance(exc, httpx.TimeoutException):
            return IpcFailure(f"Sidecar timed out after {self.timeout}s")
        if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
            return IpcFailure("Sidecar unreachable")
        return IpcFailure(f"Sidecar call failed: {type(exc).__name__}")

    async def check(self, candidate: str) -> Verdict:
        """
        Ask the sidecar whether `candidate` is an accepted secret.

        Raises:
            IpcFailure: On timeout, connection error or unexpected status
        """
        try:
            response = await self.client.post("/check", json={"candidate": candidate})
        except httpx.HTTPError as e:
            raise self._map_exception(e)

        if response.status_code == 200:
            return Verdict.accept()
        if response.status_code == 401:
            return Verdict.reject(
                _reason_from(response, _UNAUTHORIZED_REASONS, RejectReason.INVALID_SECRET)
            )
        if response.status_code == 400:
            return Verdict.reject(
                _reason_from(response, _BAD_REQUEST_REASONS, RejectReason.MALFORMED_REQUEST)
            )
        raise IpcFailure(f"Unexpected sidecar status {response.status_code}")

    async def invalidate(self) -> bool:
        """Ask the sidecar to reload its accepted set now."""
        try:
            response = await self.client.post("/invalidate")
        except httpx.HTTPError as e:
            raise self._map_exception(e)
        if response.status_code != 200:
            raise IpcFailure(f"Sidecar refused invalidation with {response.status_code}")
        return bool(response.json().get("refreshed"))
