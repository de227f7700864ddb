"""Secret store backends."""

from .base import SecretStore
from .memory import InMemorySecretStore
from .vault import VaultSecretStore

__all__ = [
    "SecretStore",
    "InMemorySecretStore",
    "VaultSecretStore",
]
