"""
Local Caller Attestation
========================
Proves to the sidecar that a caller is the co-located origin process.

The default verifier compares against a credential the platform issues to the
process (for example the function's session token). Any object with a
`verify(token) -> bool` method can be plugged in instead.
"""

import hmac
from typing import Optional, Protocol


class CallerAttestation(Protocol):
    """Verifies a caller's trust token."""

    def verify(self, token: Optional[str]) -> bool:
        ...


class StaticTokenAttestation:
    """Accepts exactly one process-issued token, compared in constant time."""

    def __init__(self, expected_token: str):
        self._expected = expected_token or ""

    @property
    def configured(self) -> bool:
        return bool(self._expected)

    def verify(self, token: Optional[str]) -> bool:
        if not self._expected or not token:
            return False
        return hmac.compare_digest(token.encode(), self._expected.encode())
