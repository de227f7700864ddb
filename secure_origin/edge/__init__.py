"""
Edge Injector
=============
Forwarding-rule configuration for the CDN layer in front of the origin.
"""

from .base import EdgeAck, EdgeInjector
from .headers import update_custom_header
from .memory import InMemoryEdgeInjector
from .http import HttpEdgeInjector, TransientEdgeError

__all__ = [
    "EdgeAck",
    "EdgeInjector",
    "update_custom_header",
    "InMemoryEdgeInjector",
    "HttpEdgeInjector",
    "TransientEdgeError",
]
