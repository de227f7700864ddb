"""
Secure Origin Errors
====================
Exception taxonomy shared by the gate, the sidecar and the rotation coordinator.

CRITICAL: Messages must never contain secret values.
"""

from typing import Optional


class SecureOriginError(Exception):
    """Base exception for all secure-origin failures."""

    def __init__(self, message: str, reason: Optional[str] = None):
        self.message = message
        self.reason = reason
        super().__init__(message)


class ConfigurationError(SecureOriginError):
    """Raised at process start when required configuration is missing or invalid."""
    pass


# Per-request errors (handled at the gate)

class MissingHeader(SecureOriginError):
    """The configured header is absent or empty."""

    def __init__(self, message: str = "Secure header missing"):
        super().__init__(message, reason="missing_header")


class InvalidSecret(SecureOriginError):
    """The presented value matches no accepted secret."""

    def __init__(self, message: str = "Secret not accepted"):
        super().__init__(message, reason="invalid_secret")


class UntrustedCaller(SecureOriginError):
    """The caller failed local attestation."""

    def __init__(self, message: str = "Caller attestation failed"):
        super().__init__(message, reason="untrusted_caller")


class IpcFailure(SecureOriginError):
    """The sidecar is unreachable, timed out or answered unexpectedly."""

    def __init__(self, message: str = "Sidecar call failed"):
        super().__init__(message, reason="ipc_failure")


# Rotation-side errors

class StoreUnavailable(SecureOriginError):
    """The secret store could not be read or written."""

    def __init__(self, message: str = "Secret store unavailable"):
        super().__init__(message, reason="store_unavailable")


class PublishFailure(SecureOriginError):
    """The edge injector configuration push failed."""

    def __init__(self, message: str = "Edge configuration push failed"):
        super().__init__(message, reason="publish_failure")


class ConcurrentRotation(SecureOriginError):
    """A rotation was requested while another one is in flight."""

    def __init__(self, message: str = "Rotation already in progress"):
        super().__init__(message, reason="concurrent_rotation")


class InvalidRotationStep(SecureOriginError, ValueError):
    """An unknown step was passed to the rotation step protocol."""

    def __init__(self, step: str):
        super().__init__(f"Invalid rotation step: {step}", reason="invalid_step")
        self.step = step
