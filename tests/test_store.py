"""
Tests for the secret store backends.
"""

from unittest.mock import MagicMock

import hvac.exceptions
import pytest

from secure_origin.errors import ConcurrentRotation, StoreUnavailable
from secure_origin.models import SecretStage
from secure_origin.store import InMemorySecretStore, VaultSecretStore


class TestInMemorySecretStore:
    """Tests for the in-memory store contract."""

    @pytest.mark.asyncio
    async def test_pending_lifecycle(self):
        """set_pending -> promote_pending replaces current."""
        store = InMemorySecretStore(current="abc123")

        pending = await store.set_pending("xyz789")
        assert pending.stage is SecretStage.PENDING

        accepted = await store.get_accepted()
        assert sorted(accepted.values()) == ["abc123", "xyz789"]

        promoted = await store.promote_pending()
        assert promoted.value == "xyz789"
        assert promoted.stage is SecretStage.CURRENT
        assert promoted.version == pending.version
        assert await store.get_pending() is None
        assert list((await store.get_accepted()).values()) == ["xyz789"]

    @pytest.mark.asyncio
    async def test_second_pending_rejected(self):
        store = InMemorySecretStore(current="abc123", pending="xyz789")
        with pytest.raises(ConcurrentRotation):
            await store.set_pending("other")

    @pytest.mark.asyncio
    async def test_discard_pending(self):
        store = InMemorySecretStore(current="abc123", pending="xyz789")

        assert await store.discard_pending() is True
        assert await store.discard_pending() is False
        assert (await store.get_current()).value == "abc123"

    @pytest.mark.asyncio
    async def test_promote_without_pending(self):
        store = InMemorySecretStore(current="abc123")
        with pytest.raises(StoreUnavailable):
            await store.promote_pending()

    @pytest.mark.asyncio
    async def test_set_current_only_once(self):
        store = InMemorySecretStore()

        seeded = await store.set_current("abc123")
        assert seeded.stage is SecretStage.CURRENT
        with pytest.raises(ConcurrentRotation):
            await store.set_current("again")

    @pytest.mark.asyncio
    async def test_fail_next(self):
        store = InMemorySecretStore(current="abc123")
        store.fail_next(1)

        with pytest.raises(StoreUnavailable):
            await store.get_current()
        assert (await store.get_current()).value == "abc123"
        assert store.calls == 2


def _vault_response(document, version=3):
    return {"data": {"data": document, "metadata": {"version": version}}}


@pytest.fixture
def vault_client():
    client = MagicMock()
    client.secrets.kv.v2.read_secret_version.return_value = _vault_response({
        "current": "abc123",
        "current_version": "v1",
        "current_created_at": "2026-01-01T00:00:00+00:00",
        "pending": None,
        "pending_version": None,
        "pending_created_at": None,
    })
    return client


@pytest.fixture
def vault_store(vault_client):
    return VaultSecretStore(
        path="secure-origin/header-secret",
        url="http://127.0.0.1:8200",
        token="test-token",
        client=vault_client,
    )


class TestVaultSecretStore:
    """Tests for the Vault KV v2 store with a mocked hvac client."""

    @pytest.mark.asyncio
    async def test_get_current(self, vault_store, vault_client):
        current = await vault_store.get_current()

        assert current.value == "abc123"
        assert current.version == "v1"
        assert current.created_at.year == 2026
        assert await vault_store.get_pending() is None
        vault_client.secrets.kv.v2.read_secret_version.assert_called_with(
            path="secure-origin/header-secret",
            mount_point="secret",
            raise_on_deleted_version=True,
        )

    @pytest.mark.asyncio
    async def test_set_pending_uses_check_and_set(self, vault_store, vault_client):
        pending = await vault_store.set_pending("xyz789")

        assert pending.value == "xyz789"
        kwargs = vault_client.secrets.kv.v2.create_or_update_secret.call_args.kwargs
        assert kwargs["cas"] == 3
        assert kwargs["secret"]["pending"] == "xyz789"
        assert kwargs["secret"]["current"] == "abc123"

    @pytest.mark.asyncio
    async def test_promote_pending(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.return_value = _vault_response({
            "current": "abc123",
            "current_version": "v1",
            "pending": "xyz789",
            "pending_version": "v2",
            "pending_created_at": "2026-01-02T00:00:00+00:00",
        }, version=4)

        promoted = await vault_store.promote_pending()

        assert promoted.value == "xyz789"
        assert promoted.version == "v2"
        kwargs = vault_client.secrets.kv.v2.create_or_update_secret.call_args.kwargs
        assert kwargs["cas"] == 4
        assert kwargs["secret"]["current"] == "xyz789"
        assert kwargs["secret"]["pending"] is None

    @pytest.mark.asyncio
    async def test_discard_without_pending_is_noop(self, vault_store, vault_client):
        assert await vault_store.discard_pending() is False
        vault_client.secrets.kv.v2.create_or_update_secret.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_document_is_empty(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.side_effect = hvac.exceptions.InvalidPath()

        accepted = await vault_store.get_accepted()
        assert accepted.is_empty

        seeded = await vault_store.set_current("abc123")
        assert seeded.value == "abc123"
        assert vault_client.secrets.kv.v2.create_or_update_secret.call_args.kwargs["cas"] == 0

    @pytest.mark.asyncio
    async def test_check_and_set_conflict(self, vault_store, vault_client):
        """A concurrent writer surfaces as ConcurrentRotation."""
        vault_client.secrets.kv.v2.create_or_update_secret.side_effect = (
            hvac.exceptions.InvalidRequest("check-and-set parameter did not match the current version")
        )
        with pytest.raises(ConcurrentRotation):
            await vault_store.set_pending("xyz789")

    @pytest.mark.asyncio
    async def test_vault_down(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.side_effect = hvac.exceptions.VaultDown("sealed")
        with pytest.raises(StoreUnavailable):
            await vault_store.get_accepted()

    @pytest.mark.asyncio
    async def test_connection_error(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.side_effect = ConnectionError("refused")
        with pytest.raises(StoreUnavailable):
            await vault_store.get_current()

    @pytest.mark.asyncio
    async def test_malformed_timestamp(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.return_value = _vault_response({
            "current": "abc123",
            "current_created_at": "yesterday",
        })
        with pytest.raises(StoreUnavailable):
            await vault_store.get_accepted()

    @pytest.mark.asyncio
    async def test_malformed_response(self, vault_store, vault_client):
        vault_client.secrets.kv.v2.read_secret_version.return_value = {"data": {"data": {}}}
        with pytest.raises(StoreUnavailable):
            await vault_store.get_accepted()
