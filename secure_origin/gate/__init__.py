"""
Origin Request Gate
===================
Enforcement point inside the public-facing origin process.
"""

from .client import SidecarClient
from .gate import OriginRequestGate, find_header, rejection_response, serverless_response
from .middleware import OriginGateMiddleware
from .handler import secure_handler

__all__ = [
    "SidecarClient",
    "OriginRequestGate",
    "find_header",
    "rejection_response",
    "serverless_response",
    "OriginGateMiddleware",
    "secure_handler",
]
