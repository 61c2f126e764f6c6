"""
Tests for the BiometricStore facade.

This test suite verifies the public surface end to end:
- Embedding round trip without remote involvement
- Registry merge precedence and listing order
- Offline session lifecycle
- Every operation keeps working when durable storage always fails
- Deletion is immediately visible even if the remote delete fails
- Re-enrolling after a failed remote delete survives retries and pruning
- The enroll/compare scenario with the configured threshold

Run with: pytest tests/test_store.py -v
"""

import sqlite3

import pytest

from biostore.context import StoreContext
from biostore.models import Embedding
from biostore.persistence import PersistenceAdapter
from biostore.store import BiometricStore
from tests.conftest import (
    TEST_CONFIG,
    FlakyConnection,
    failing_connect,
    make_descriptor,
    offset_descriptor,
)


async def exercise_public_surface(store: BiometricStore):
    """Run every public operation and check the results are consistent."""
    embedding = Embedding("u1", make_descriptor(1), 1000)
    assert await store.save_embedding(embedding) is True
    assert await store.get_embedding("u1") == embedding

    await store.update_registry("u1", email="a@example.com", display_name="Alice")
    await store.update_registry("u2", updated_at=500)
    records = await store.list_registered_users()
    assert [r.identity_id for r in records] == ["u1", "u2"]
    assert records[0].enrolled is True
    assert records[0].email == "a@example.com"

    session = await store.set_offline_session("u1", email="a@example.com")
    assert await store.get_offline_session() == session
    await store.clear_offline_session()
    assert await store.get_offline_session() is None

    result = store.compare_descriptors(embedding.descriptor, offset_descriptor(embedding.descriptor, 0.2))
    assert result.is_match is True

    await store.delete_user_record("u1")
    assert await store.get_embedding("u1") is None
    assert [r.identity_id for r in await store.list_registered_users()] == ["u2"]


class TestBiometricStore:
    """Public surface on a working local store."""

    @pytest.fixture
    def store(self, offline_context):
        return BiometricStore(offline_context)

    @pytest.mark.asyncio
    async def test_public_surface(self, store):
        """Test every public operation on a working store."""
        await exercise_public_surface(store)

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        """Test saving and loading several embeddings."""
        for seed in range(5):
            embedding = Embedding(f"u{seed}", make_descriptor(seed), 1000 + seed)
            await store.save_embedding(embedding)
            assert await store.get_embedding(embedding.identity_id) == embedding

    @pytest.mark.asyncio
    async def test_merge_precedence(self, store):
        """Test that an older registry write loses."""
        await store.update_registry("u1", updated_at=200, display_name="Newer")
        await store.update_registry("u1", updated_at=100, display_name="Older")

        assert store.get_registry_record("u1").display_name == "Newer"

    @pytest.mark.asyncio
    async def test_listing_order(self, store):
        """Test listing order with tied timestamps."""
        await store.update_registry("a", updated_at=100)
        await store.update_registry("b", updated_at=100)
        await store.update_registry("c", updated_at=200)

        records = await store.list_registered_users()
        assert [r.identity_id for r in records] == ["c", "a", "b"]

    def test_threshold_from_config(self, local_store):
        """Test that the threshold comes from config."""
        config = dict(TEST_CONFIG, matching={"threshold": 0.1})
        store = BiometricStore(StoreContext(config, persistence=local_store))
        base = make_descriptor(1)

        assert store.threshold == 0.1
        assert store.compare_descriptors(base, offset_descriptor(base, 0.2)).is_match is False
        assert store.compare_descriptors(base, offset_descriptor(base, 0.2), threshold=0.3).is_match is True

    def test_unsupported_descriptor_length(self, local_store):
        """Test that an unsupported descriptor length is rejected."""
        config = dict(TEST_CONFIG, matching={"descriptor_length": 512})
        with pytest.raises(ValueError, match="descriptor_length"):
            BiometricStore(StoreContext(config, persistence=local_store))

    @pytest.mark.asyncio
    async def test_scenario(self, store):
        """Test the enroll-then-compare scenario."""
        d1 = make_descriptor(42)
        await store.save_embedding(Embedding("u1", d1, 1000))
        stored = await store.get_embedding("u1")
        assert list(stored.descriptor) == d1

        close = store.compare_descriptors(stored.descriptor, offset_descriptor(d1, 0.2))
        assert close.is_match is True
        assert close.distance == pytest.approx(0.2)

        far = store.compare_descriptors(stored.descriptor, offset_descriptor(d1, 0.9))
        assert far.is_match is False
        assert far.distance == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, temp_dir):
        """Test that the context manager closes the database."""
        persistence = PersistenceAdapter(temp_dir / "store.sqlite")
        async with BiometricStore(StoreContext(TEST_CONFIG, persistence=persistence)) as store:
            await store.update_registry("u1")
        assert persistence._conn is None


class TestFallbackResilience:
    """Durable storage fails on every call."""

    @pytest.mark.asyncio
    async def test_unopenable_database(self, temp_dir):
        """Test every operation when the database cannot open."""
        persistence = PersistenceAdapter(temp_dir / "store.sqlite", connect=failing_connect)
        store = BiometricStore(StoreContext(TEST_CONFIG, persistence=persistence))

        await exercise_public_surface(store)
        assert persistence.backend_kind("embeddings") == "memory"

    @pytest.mark.asyncio
    async def test_database_breaks_after_open(self, temp_dir):
        """Test every operation when the database breaks after opening."""
        def connect(path, **kwargs):
            connection = FlakyConnection(sqlite3.connect(path, **kwargs))
            connection.broken = True
            return connection

        persistence = PersistenceAdapter(temp_dir / "store.sqlite", connect=connect)
        store = BiometricStore(StoreContext(TEST_CONFIG, persistence=persistence))

        await exercise_public_surface(store)


class TestDeletionWithFailingRemote:
    """Local view is consistent right after a deletion the remote never sees."""

    @pytest.mark.asyncio
    async def test_delete(self, local_store, unreachable_client):
        """Test deleting while the remote is unreachable."""
        store = BiometricStore(
            StoreContext(TEST_CONFIG, persistence=local_store, http_client=unreachable_client)
        )
        await store.save_embedding(Embedding("u1", make_descriptor(1), 1000))
        await store.update_registry("u2", updated_at=10)

        await store.delete_user_record("u1")

        assert await store.get_embedding("u1") is None
        assert [r.identity_id for r in await store.list_registered_users()] == ["u2"]
        assert store.sync_status()["failed"] >= 1

    @pytest.mark.asyncio
    async def test_delete_not_resurrected_by_remote_listing(self, synced_context, remote_documents):
        """Test that the remote listing does not bring back a deleted user."""
        store = BiometricStore(synced_context)
        await store.save_embedding(Embedding("u1", make_descriptor(1), 1000))
        await synced_context.sync_queue.drain()

        # Remote deletion fails this time
        remote = store.embeddings.remote
        working_delete = remote.delete

        async def failing_delete(identity_id):
            return False

        remote.delete = failing_delete
        await store.delete_user_record("u1")

        assert await store.get_embedding("u1") is None
        assert await store.list_registered_users() == []

        # Retrying once the remote recovers settles the deletion
        remote.delete = working_delete
        assert await store.retry_failed_sync() == 1
        assert store.sync_status()["failed"] == 0
        assert remote_documents.get("registry", "u1") is None
        assert remote_documents.get("embeddings", "u1") is None


class TestReenrollAfterFailedDelete:
    """An identity deleted while the remote was failing, then enrolled again."""

    async def delete_with_failing_remote(self, store, identity_id):
        remote = store.embeddings.remote
        working_delete = remote.delete

        async def failing_delete(identity_id):
            return False

        remote.delete = failing_delete
        await store.delete_user_record(identity_id)
        await store.context.sync_queue.drain()
        remote.delete = working_delete

    @pytest.mark.asyncio
    async def test_retry_keeps_reenrolled_identity(self, synced_context, remote_documents):
        """Test that retrying failed sync does not delete a re-enrolled identity."""
        store = BiometricStore(synced_context)
        await store.save_embedding(Embedding("u1", make_descriptor(1), 1000))
        await self.delete_with_failing_remote(store, "u1")
        assert store.sync_status()["failed"] == 1

        reenrolled = Embedding("u1", make_descriptor(2), 2000)
        await store.save_embedding(reenrolled)
        assert [r.identity_id for r in await store.list_registered_users()] == ["u1"]

        assert await store.retry_failed_sync() == 0
        assert store.sync_status()["failed"] == 0
        assert remote_documents.get("embeddings", "u1") is not None
        assert remote_documents.get("registry", "u1") is not None
        assert [r.identity_id for r in await store.list_registered_users()] == ["u1"]
        assert await store.get_embedding("u1") == reenrolled

    @pytest.mark.asyncio
    async def test_pruned_history_keeps_reenrolled_identity(self, local_store, remote_client):
        """Test that pruning sync history does not hide a re-enrolled identity."""
        config = dict(TEST_CONFIG, sync={"enabled": False, "max_history": 2})
        context = StoreContext(config, persistence=local_store, http_client=remote_client)
        store = BiometricStore(context)

        await store.save_embedding(Embedding("u1", make_descriptor(1), 1000))
        await self.delete_with_failing_remote(store, "u1")

        await store.save_embedding(Embedding("u1", make_descriptor(2), 2000))
        await store.save_embedding(Embedding("u2", make_descriptor(3), 3000))
        await context.sync_queue.drain()

        listed = [r.identity_id for r in await store.list_registered_users()]
        assert "u1" in listed
        assert "u2" in listed

        local_store.remove("embeddings", "u1")
        assert await store.get_embedding("u1") is not None
        await context.sync_queue.drain()
