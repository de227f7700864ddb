"""
Edge Injector Contract
======================
The CDN-layer rule that appends the secret header to every proxied request.

After update_header() is acknowledged, newly originated edge requests carry the
new value. Requests already in flight may carry the old one for up to
`propagation_delay` seconds; the rotation grace window must exceed it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..models import utcnow


@dataclass(frozen=True)
class EdgeAck:
    """Acknowledgement of an edge configuration update."""
    acknowledged_at: datetime = field(default_factory=utcnow)
    etag: Optional[str] = None


class EdgeInjector(ABC):
    """Pushes the header value into the edge layer's forwarding configuration."""

    propagation_delay: float = 0.0

    @abstractmethod
    async def update_header(self, name: str, value: str) -> EdgeAck:
        """Set the custom header value. Raises PublishFailure on failure."""

    async def aclose(self) -> None:
        """Release transport resources. Nothing to release by default."""
