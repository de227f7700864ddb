"""
In-Memory Edge Injector
=======================
Records header updates locally. Used by tests and local development.
"""

from typing import Dict, List, Optional, Tuple

import structlog

from ..errors import PublishFailure
from ..logging import mask_secret
from .base import EdgeAck, EdgeInjector

logger = structlog.get_logger(__name__)


class InMemoryEdgeInjector(EdgeInjector):
    """Keeps the forwarded header values in a dict."""

    def __init__(self, propagation_delay: float = 0.0, headers: Optional[Dict[str, str]] = None):
        self.propagation_delay = propagation_delay
        self._headers: Dict[str, str] = {k.lower(): v for k, v in (headers or {}).items()}
        self._failures_left = 0
        self._apply_on_failure = False
        self.history: List[Tuple[str, str, EdgeAck]] = []

    def fail_next(self, count: int = 1, applied: bool = False) -> None:
        """Fail the next `count` updates. With `applied`, the value lands before the error."""
        self._failures_left = count
        self._apply_on_failure = applied

    def current_value(self, name: str) -> Optional[str]:
        return self._headers.get(name.lower())

    async def update_header(self, name: str, value: str) -> EdgeAck:
        if self._failures_left > 0:
            self._failures_left -= 1
            if self._apply_on_failure:
                self._headers[name.lower()] = value
            raise PublishFailure("In-memory edge configured to fail")

        self._headers[name.lower()] = value
        ack = EdgeAck()
        self.history.append((name, mask_secret(value), ack))
        logger.info("edge_header_updated", header=name, fingerprint=mask_secret(value))
        return ack
