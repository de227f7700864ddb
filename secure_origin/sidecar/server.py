"""
Sidecar Server
==============
Runs the sidecar app with uvicorn, bound to a loopback address only.
"""

from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI

from ..config import Settings, is_loopback_host
from ..errors import ConfigurationError
from ..store.base import SecretStore
from .app import create_sidecar_app
from .attestation import CallerAttestation, StaticTokenAttestation
from .authorizer import SidecarAuthorizer
from .cache import AcceptedSetCache

logger = structlog.get_logger(__name__)


def build_sidecar_app(
    settings: Settings,
    store: SecretStore,
    attestation: Optional[CallerAttestation] = None,
) -> FastAPI:
    """Wire cache, attestation and authorizer from settings."""
    if attestation is None:
        attestation = StaticTokenAttestation(settings.caller_token)
        if not attestation.configured:
            # Nothing could ever pass attestation; refuse to start rather than deny forever
            raise ConfigurationError("No caller token configured for the sidecar")

    cache = AcceptedSetCache(
        store,
        refresh_interval=settings.refresh_interval,
        cooldown=settings.cooldown,
    )
    authorizer = SidecarAuthorizer(cache, attestation)
    return create_sidecar_app(authorizer, cache, manage_cache=True)


class SidecarServer:
    """Thin wrapper around uvicorn.Server that refuses non-loopback binds."""

    def __init__(self, app: FastAPI, host: str = "127.0.0.1", port: int = 3579):
        if not is_loopback_host(host):
            raise ConfigurationError(f"Sidecar must listen on loopback, got {host!r}")
        self.host = host
        self.port = port
        self._server = uvicorn.Server(
            uvicorn.Config(
                app,
                host=host,
                port=port,
                access_log=False,
                log_config=None,
                lifespan="on",
            )
        )

    async def serve(self) -> None:
        logger.info("sidecar_starting", host=self.host, port=self.port)
        await self._server.serve()
        logger.info("sidecar_stopped")

    def shutdown(self) -> None:
        self._server.should_exit = True
