"""
Secure Origin
=============
Rotating shared-secret header protection for edge-fronted serverless origins.
"""

__version__ = "0.3.0"

# Configuration
from secure_origin.config import Settings

# Errors
from secure_origin.errors import (
    SecureOriginError,
    ConfigurationError,
    MissingHeader,
    InvalidSecret,
    UntrustedCaller,
    IpcFailure,
    StoreUnavailable,
    PublishFailure,
    ConcurrentRotation,
    InvalidRotationStep,
)

# Models
from secure_origin.models import (
    AcceptedSet,
    AuthorizationHeader,
    RejectReason,
    RotationState,
    RotationWindow,
    Secret,
    SecretStage,
    Verdict,
)

# Logging
from secure_origin.logging import configure_logging, mask_secret

# Secret store
from secure_origin.store import InMemorySecretStore, SecretStore, VaultSecretStore

# Sidecar
from secure_origin.sidecar import (
    AcceptedSetCache,
    SidecarAuthorizer,
    SidecarServer,
    StaticTokenAttestation,
    build_sidecar_app,
    create_sidecar_app,
)

# Gate
from secure_origin.gate import (
    OriginGateMiddleware,
    OriginRequestGate,
    SidecarClient,
    secure_handler,
)

# Edge
from secure_origin.edge import EdgeAck, EdgeInjector, HttpEdgeInjector, InMemoryEdgeInjector

# Rotation
from secure_origin.rotation import (
    RotationCoordinator,
    RotationResult,
    RotationScheduler,
    RotationStepHandler,
    generate_secret,
)
