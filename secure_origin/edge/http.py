"""
HTTP Edge Injector
==================
Pushes the header value through an edge configuration API:

    GET /distributions/{id}/config   -> {"DistributionConfig": {...}}, ETag
    PUT /distributions/{id}/config   <- {"DistributionConfig": {...}}, If-Match

The config channel itself must be authenticated and encrypted; the bearer
token goes over HTTPS only.
"""

import logging
from typing import Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..config import Settings
from ..errors import ConfigurationError, PublishFailure
from ..logging import mask_secret
from .base import EdgeAck, EdgeInjector
from .headers import update_custom_header

logger = structlog.get_logger(__name__)
retry_logger = logging.getLogger(__name__)


class TransientEdgeError(Exception):
    """Edge API failure worth retrying (network, 5xx, 429, ETag mismatch)."""


class HttpEdgeInjector(EdgeInjector):
    """Edge injector backed by a distribution configuration API."""

    def __init__(
        self,
        base_url: str,
        distribution_id: str,
        api_token: str = "",
        propagation_delay: float = 60.0,
        timeout: float = 10.0,
        max_attempts: int = 3,
        wait=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not distribution_id:
            raise ConfigurationError("Edge injector requires a distribution id")
        self.distribution_id = distribution_id
        self.propagation_delay = propagation_delay
        self.max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=10)

        headers = {"Accept": "application/json", "User-Agent": "secure-origin-rotation"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport=None) -> "HttpEdgeInjector":
        return cls(
            settings.edge_api_url,
            settings.distribution_id,
            api_token=settings.edge_api_token,
            propagation_delay=settings.edge_propagation_delay,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    @property
    def _config_path(self) -> str:
        return f"/distributions/{self.distribution_id}/config"

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status >= 500 or status in (409, 412, 429):
            raise TransientEdgeError(f"{action} returned {status}")
        raise PublishFailure(f"Edge API {action} rejected with {status}")

    async def _push(self, name: str, value: str) -> EdgeAck:
        try:
            response = await self.client.get(self._config_path)
            self._raise_for_status(response, "get config")
            etag = response.headers.get("ETag")
            config = response.json().get("DistributionConfig") or {}

            if update_custom_header(config, name, value) == 0:
                raise PublishFailure(f"No origin carries the custom header {name}")

            put_headers = {"If-Match": etag} if etag else {}
            response = await self.client.put(
                self._config_path,
                json={"DistributionConfig": config},
                headers=put_headers,
            )
            self._raise_for_status(response, "update config")
        except httpx.HTTPError as e:
            raise TransientEdgeError(f"Edge API unreachable: {type(e).__name__}")

        return EdgeAck(etag=response.headers.get("ETag"))

    async def update_header(self, name: str, value: str) -> EdgeAck:
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientEdgeError),
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait,
                before_sleep=before_sleep_log(retry_logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    ack = await self._push(name, value)
        except TransientEdgeError as e:
            logger.error("edge_update_failed", distribution=self.distribution_id, error=str(e))
            raise PublishFailure(str(e))

        logger.info(
            "edge_header_updated",
            distribution=self.distribution_id,
            header=name,
            fingerprint=mask_secret(value),
        )
        return ack
