"""
Secure Origin Models
====================
Data models and enums for secrets, verdicts and rotation windows.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterator, Optional

from .logging import mask_secret


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SecretStage(str, Enum):
    """Lifecycle stage of a stored secret."""
    CURRENT = "current"
    PENDING = "pending"


class RejectReason(str, Enum):
    """Reasons a request is denied."""
    MISSING_HEADER = "missing_header"
    MALFORMED_REQUEST = "malformed_request"
    INVALID_SECRET = "invalid_secret"
    UNTRUSTED_CALLER = "untrusted_caller"
    IPC_FAILURE = "ipc_failure"


class RotationState(str, Enum):
    """Rotation coordinator states."""
    IDLE = "idle"
    GENERATING = "generating"
    PUBLISHING = "publishing"
    GRACE = "grace"
    FINALIZING = "finalizing"


# Fixed response taxonomy: (status code, message)
_REJECTION_RESPONSES = {
    RejectReason.MISSING_HEADER: (400, "Bad request"),
    RejectReason.MALFORMED_REQUEST: (400, "Bad request"),
    RejectReason.INVALID_SECRET: (401, "Unauthorized"),
    RejectReason.UNTRUSTED_CALLER: (401, "Unauthorized"),
    RejectReason.IPC_FAILURE: (500, "Internal error"),
}


@dataclass(frozen=True)
class Secret:
    """A stored secret value. The value never appears in repr()."""
    value: str = field(repr=False)
    stage: SecretStage
    created_at: datetime = field(default_factory=utcnow)
    version: Optional[str] = None

    @property
    def fingerprint(self) -> str:
        return mask_secret(self.value)

    def __repr__(self) -> str:
        return (
            f"Secret(stage={self.stage.value}, version={self.version}, "
            f"fingerprint={self.fingerprint})"
        )

    __str__ = __repr__


@dataclass(frozen=True)
class AuthorizationHeader:
    """The configured header as presented on one inbound request."""
    name: str
    value: str = field(repr=False)


@dataclass(frozen=True)
class Verdict:
    """Result of an authorization check."""
    accepted: bool
    reason: Optional[RejectReason] = None

    @classmethod
    def accept(cls) -> "Verdict":
        return cls(accepted=True)

    @classmethod
    def reject(cls, reason: RejectReason) -> "Verdict":
        return cls(accepted=False, reason=RejectReason(reason))

    @property
    def status_code(self) -> int:
        if self.accepted:
            return 200
        return _REJECTION_RESPONSES[self.reason][0]

    @property
    def message(self) -> str:
        if self.accepted:
            return "OK"
        return _REJECTION_RESPONSES[self.reason][1]


@dataclass(frozen=True)
class AcceptedSet:
    """
    Immutable snapshot of the secrets the sidecar accepts.

    Replaced as a whole on refresh, so readers never see a partial update.
    """
    current: Optional[Secret] = None
    pending: Optional[Secret] = None
    fetched_at: datetime = field(default_factory=utcnow)

    def values(self) -> Iterator[str]:
        if self.current is not None:
            yield self.current.value
        if self.pending is not None:
            yield self.pending.value

    @property
    def is_empty(self) -> bool:
        return self.current is None and self.pending is None

    def __len__(self) -> int:
        return sum(1 for _ in self.values())


@dataclass(frozen=True)
class RotationWindow:
    """Period during which both the replaced and the new secret are accepted."""
    started_at: datetime
    grace_duration: timedelta
    pending_secret: Secret

    @property
    def ends_at(self) -> datetime:
        return self.started_at + self.grace_duration

    def is_open(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.started_at <= now < self.ends_at
