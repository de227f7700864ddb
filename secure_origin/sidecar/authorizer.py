"""
Sidecar Authorizer
==================
Validates a candidate secret for the co-located origin process.

Order matters: the caller's trust token is checked first and a failure returns
before any secret comparison runs.
"""

import hmac
from typing import Optional

import structlog

from ..metrics import SIDECAR_CHECKS, record_verdict
from ..models import AcceptedSet, RejectReason, Verdict
from .attestation import CallerAttestation
from .cache import AcceptedSetCache

logger = structlog.get_logger(__name__)


class SidecarAuthorizer:
    """Accept/deny decisions against the cached accepted set."""

    def __init__(self, cache: AcceptedSetCache, attestation: CallerAttestation):
        self.cache = cache
        self.attestation = attestation
        # Number of constant-time secret comparisons performed
        self.comparisons = 0

    def _matches(self, candidate: str, accepted: AcceptedSet) -> bool:
        # Compare against every value, no early exit
        presented = candidate.encode()
        matched = False
        for value in accepted.values():
            self.comparisons += 1
            if hmac.compare_digest(presented, value.encode()):
                matched = True
        return matched

    async def check(self, candidate: Optional[str], trust_token: Optional[str]) -> Verdict:
        verdict = await self._decide(candidate, trust_token)
        record_verdict(SIDECAR_CHECKS, verdict)
        return verdict

    async def _decide(self, candidate: Optional[str], trust_token: Optional[str]) -> Verdict:
        if not self.attestation.verify(trust_token):
            logger.warning("sidecar_untrusted_caller")
            return Verdict.reject(RejectReason.UNTRUSTED_CALLER)

        candidate = (candidate or "").strip()
        if not candidate:
            return Verdict.reject(RejectReason.MISSING_HEADER)

        snapshot = self.cache.snapshot()
        if snapshot.is_empty:
            await self.cache.refresh_if_stale()
            snapshot = self.cache.snapshot()
            if snapshot.is_empty:
                logger.error("sidecar_no_accepted_secrets", degraded=self.cache.degraded)
                return Verdict.reject(RejectReason.IPC_FAILURE)

        if self._matches(candidate, snapshot):
            return Verdict.accept()

        # A miss may mean a rotation we have not seen yet
        if not self.cache.was_rejected(candidate):
            if await self.cache.refresh_if_stale():
                if self._matches(candidate, self.cache.snapshot()):
                    return Verdict.accept()
            self.cache.remember_rejected(candidate)

        return Verdict.reject(RejectReason.INVALID_SECRET)
