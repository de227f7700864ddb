"""
HashiCorp Vault Secret Store
============================

Keeps the header secret in a single Vault KV v2 document:

    {
        "current": "...", "current_version": "...", "current_created_at": "...",
        "pending": "...", "pending_version": "...", "pending_created_at": "..."
    }

Writes use KV v2 check-and-set against the version that was read, so two
writers can never interleave a pending value.

Usage:
    from secure_origin.store import VaultSecretStore

    store = VaultSecretStore(path="secure-origin/header-secret")
    current = await store.get_current()
"""

import asyncio
import os
import uuid
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional, Tuple

import hvac
import hvac.exceptions
import structlog

from ..errors import ConcurrentRotation, StoreUnavailable
from ..models import AcceptedSet, Secret, SecretStage, utcnow
from .base import SecretStore

logger = structlog.get_logger(__name__)

Document = Dict[str, Any]


class VaultSecretStore(SecretStore):
    """Vault KV v2 backed secret store."""

    def __init__(
        self,
        path: str,
        url: Optional[str] = None,
        token: Optional[str] = None,
        mount_point: str = "secret",
        client: Optional[hvac.Client] = None,
    ):
        self.path = path
        self.url = url or os.environ.get("VAULT_ADDR", "http://127.0.0.1:8200")
        self.token = token or os.environ.get("VAULT_TOKEN")
        self.mount_point = mount_point
        self._client = client
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "VaultSecretStore":
        return cls(
            path=settings.secret_path,
            url=settings.vault_addr or None,
            token=settings.vault_token,
            mount_point=settings.vault_mount,
        )

    @property
    def client(self) -> hvac.Client:
        """Lazy-loaded Vault client."""
        if self._client is None:
            self._client = hvac.Client(url=self.url, token=self.token)
            if not self._client.is_authenticated():
                raise StoreUnavailable("Vault authentication failed. Check VAULT_TOKEN.")
        return self._client

    # ------------------------------------------------------------------
    # Blocking helpers, run in the default executor
    # ------------------------------------------------------------------

    def _read_sync(self) -> Tuple[Document, int]:
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=self.path,
                mount_point=self.mount_point,
                raise_on_deleted_version=True,
            )
        except hvac.exceptions.InvalidPath:
            return {}, 0
        try:
            data = response["data"]
            return dict(data.get("data") or {}), int(data["metadata"]["version"])
        except (KeyError, TypeError, ValueError) as e:
            logger.error("vault_document_invalid", path=self.path, error_type=type(e).__name__)
            raise StoreUnavailable("Vault returned a malformed secret document")

    def _write_sync(self, document: Document, cas: int) -> None:
        self.client.secrets.kv.v2.create_or_update_secret(
            path=self.path,
            secret=document,
            cas=cas,
            mount_point=self.mount_point,
        )

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except StoreUnavailable:
            raise
        except hvac.exceptions.InvalidRequest as e:
            # KV v2 answers a failed check-and-set with 400
            if "check-and-set" in str(e):
                raise ConcurrentRotation("Secret document changed during write")
            logger.error("vault_request_rejected", path=self.path, error_type=type(e).__name__)
            raise StoreUnavailable("Vault rejected the request")
        except (hvac.exceptions.VaultError, OSError) as e:
            logger.error("vault_unavailable", path=self.path, error_type=type(e).__name__)
            raise StoreUnavailable("Vault is unavailable")

    async def _read(self) -> Tuple[Document, int]:
        return await self._run(self._read_sync)

    async def _write(self, document: Document, cas: int) -> None:
        await self._run(self._write_sync, document, cas)

    # ------------------------------------------------------------------
    # Document mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _secret_from(document: Document, stage: SecretStage) -> Optional[Secret]:
        key = stage.value
        value = document.get(key)
        if not value:
            return None
        created_raw = document.get(f"{key}_created_at")
        try:
            created_at = datetime.fromisoformat(created_raw) if created_raw else utcnow()
        except (TypeError, ValueError) as e:
            logger.error("vault_document_invalid", field=f"{key}_created_at", error_type=type(e).__name__)
            raise StoreUnavailable("Vault returned a malformed secret document")
        return Secret(
            value=value,
            stage=stage,
            created_at=created_at,
            version=document.get(f"{key}_version"),
        )

    @staticmethod
    def _stage_fields(stage: SecretStage, value: Optional[str], version: Optional[str] = None,
                      created_at: Optional[datetime] = None) -> Document:
        key = stage.value
        if value is None:
            return {key: None, f"{key}_version": None, f"{key}_created_at": None}
        return {
            key: value,
            f"{key}_version": version or uuid.uuid4().hex,
            f"{key}_created_at": (created_at or utcnow()).isoformat(),
        }

    # ------------------------------------------------------------------
    # SecretStore
    # ------------------------------------------------------------------

    async def get_current(self) -> Optional[Secret]:
        document, _ = await self._read()
        return self._secret_from(document, SecretStage.CURRENT)

    async def get_pending(self) -> Optional[Secret]:
        document, _ = await self._read()
        return self._secret_from(document, SecretStage.PENDING)

    async def get_accepted(self) -> AcceptedSet:
        document, _ = await self._read()
        return AcceptedSet(
            current=self._secret_from(document, SecretStage.CURRENT),
            pending=self._secret_from(document, SecretStage.PENDING),
            fetched_at=utcnow(),
        )

    async def set_pending(self, value: str) -> Secret:
        async with self._write_lock:
            document, version = await self._read()
            if document.get(SecretStage.PENDING.value):
                raise ConcurrentRotation("A pending secret already exists")
            document.update(self._stage_fields(SecretStage.PENDING, value))
            await self._write(document, version)
            logger.info("vault_pending_written", path=self.path,
                        version=document["pending_version"])
            return self._secret_from(document, SecretStage.PENDING)

    async def promote_pending(self) -> Secret:
        async with self._write_lock:
            document, version = await self._read()
            pending = self._secret_from(document, SecretStage.PENDING)
            if pending is None:
                raise StoreUnavailable("No pending secret to promote")
            document.update(self._stage_fields(SecretStage.CURRENT, pending.value, pending.version))
            document.update(self._stage_fields(SecretStage.PENDING, None))
            await self._write(document, version)
            logger.info("vault_pending_promoted", path=self.path, version=pending.version)
            return self._secret_from(document, SecretStage.CURRENT)

    async def discard_pending(self) -> bool:
        async with self._write_lock:
            document, version = await self._read()
            if not document.get(SecretStage.PENDING.value):
                return False
            document.update(self._stage_fields(SecretStage.PENDING, None))
            await self._write(document, version)
            logger.warning("vault_pending_discarded", path=self.path)
            return True

    async def set_current(self, value: str) -> Secret:
        async with self._write_lock:
            document, version = await self._read()
            if document.get(SecretStage.CURRENT.value):
                raise ConcurrentRotation("A current secret already exists")
            document.update(self._stage_fields(SecretStage.CURRENT, value))
            await self._write(document, version)
            logger.info("vault_current_seeded", path=self.path,
                        version=document["current_version"])
            return self._secret_from(document, SecretStage.CURRENT)
