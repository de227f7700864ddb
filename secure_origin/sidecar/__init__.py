"""
Local Authorization Sidecar
===========================
Loopback-only process that validates header secrets for the origin.
"""

from .attestation import CallerAttestation, StaticTokenAttestation
from .cache import AcceptedSetCache
from .authorizer import SidecarAuthorizer
from .app import CALLER_TOKEN_HEADER, create_sidecar_app
from .server import SidecarServer, build_sidecar_app

__all__ = [
    "CallerAttestation",
    "StaticTokenAttestation",
    "AcceptedSetCache",
    "SidecarAuthorizer",
    "CALLER_TOKEN_HEADER",
    "create_sidecar_app",
    "SidecarServer",
    "build_sidecar_app",
]
