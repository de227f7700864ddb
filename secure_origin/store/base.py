"""
Secret Store Contract
=====================
Holds the current secret and, during a rotation, the pending one.

Read access must be limited to the origin's execution identity. That is a
policy on the backend (Vault policy, IAM), not something enforced here.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..models import AcceptedSet, Secret, utcnow


class SecretStore(ABC):
    """
    Async secret store.

    Invariant: at most one current and at most one pending secret.
    Backend failures surface as StoreUnavailable.
    """

    @abstractmethod
    async def get_current(self) -> Optional[Secret]:
        """Return the current secret, or None before the first bootstrap."""

    @abstractmethod
    async def get_pending(self) -> Optional[Secret]:
        """Return the pending secret if a rotation is in progress."""

    @abstractmethod
    async def set_pending(self, value: str) -> Secret:
        """Store a new pending value. Raises ConcurrentRotation if one exists."""

    @abstractmethod
    async def promote_pending(self) -> Secret:
        """Make pending the current secret and discard the old current."""

    @abstractmethod
    async def discard_pending(self) -> bool:
        """Drop the pending value of an aborted rotation. Returns True if one existed."""

    @abstractmethod
    async def set_current(self, value: str) -> Secret:
        """Seed the first current secret. Raises ConcurrentRotation if one exists."""

    async def get_accepted(self) -> AcceptedSet:
        current = await self.get_current()
        pending = await self.get_pending()
        return AcceptedSet(current=current, pending=pending, fetched_at=utcnow())
