"""
Biometric Store Facade

Public surface of the offline-first biometric identity store, consumed by
the login flow, the admin CLI and application glue:

- save_embedding / get_embedding / delete_user_record
- update_registry / list_registered_users
- set_offline_session / get_offline_session / clear_offline_session
- compare_descriptors

Storage and network failures never escape these methods; they degrade to
the best available tier and are logged. Absent records come back as None.

Usage:
    from biostore.store import BiometricStore

    async with BiometricStore(StoreContext(config)) as store:
        await store.save_embedding(Embedding("u1", descriptor, now_ms()))
        stored = await store.get_embedding("u1")
        result = store.compare_descriptors(stored.descriptor, live)
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from biostore.context import StoreContext
from biostore.embedding_store import EmbeddingStore
from biostore.matcher import DEFAULT_THRESHOLD, MatchResult, compare_descriptors
from biostore.models import DESCRIPTOR_LENGTH, Embedding, OfflineSession, RegistryRecord
from biostore.registry import RegistryManager
from biostore.session import SessionManager

logger = logging.getLogger(__name__)


class BiometricStore:
    """
    Facade over the registry, embedding store, session manager and matcher.

    Attributes:
        context: Shared StoreContext.
        registry: RegistryManager.
        embeddings: EmbeddingStore.
        sessions: SessionManager.
        threshold: Default match threshold (matching.threshold, 0.45).
    """

    def __init__(self, context: Optional[StoreContext] = None):
        self.context = context if context is not None else StoreContext()
        self.registry = RegistryManager(self.context)
        self.embeddings = EmbeddingStore(self.context, self.registry)
        self.sessions = SessionManager(self.context)
        self.threshold = float(
            self.context.matching_config.get("threshold", DEFAULT_THRESHOLD)
        )

        descriptor_length = int(
            self.context.matching_config.get("descriptor_length", DESCRIPTOR_LENGTH)
        )
        if descriptor_length != DESCRIPTOR_LENGTH:
            raise ValueError(
                f"matching.descriptor_length is {descriptor_length}, but the store "
                f"only handles {DESCRIPTOR_LENGTH}-value descriptors"
            )

    async def __aenter__(self) -> "BiometricStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.context.aclose()

    # Embeddings

    async def save_embedding(self, embedding: Embedding) -> bool:
        return await self.embeddings.save(embedding)

    async def get_embedding(self, identity_id: str) -> Optional[Embedding]:
        return await self.embeddings.get(identity_id)

    async def delete_user_record(self, identity_id: str) -> None:
        await self.embeddings.delete(identity_id)

    # Registry

    async def update_registry(
        self, identity_id: str, updated_at: Optional[int] = None, **fields: Any
    ) -> RegistryRecord:
        return await self.registry.upsert(identity_id, updated_at=updated_at, **fields)

    def get_registry_record(self, identity_id: str) -> Optional[RegistryRecord]:
        return self.registry.get(identity_id)

    async def list_registered_users(self) -> List[RegistryRecord]:
        return await self.registry.list_all()

    # Offline session

    async def set_offline_session(
        self,
        identity_id: str,
        email: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> OfflineSession:
        return self.sessions.set(identity_id, email=email, display_name=display_name)

    async def get_offline_session(self) -> Optional[OfflineSession]:
        return self.sessions.get()

    async def clear_offline_session(self) -> None:
        self.sessions.clear()

    # Matching

    def compare_descriptors(
        self,
        stored: Sequence[float],
        live: Sequence[float],
        threshold: Optional[float] = None,
    ) -> MatchResult:
        """Compare two descriptors; threshold defaults to the configured value."""
        return compare_descriptors(
            stored, live, self.threshold if threshold is None else threshold
        )

    # Replication

    def sync_status(self) -> Dict[str, int]:
        """Counts of pending, failed and recorded replication tasks."""
        return self.context.sync_queue.status()

    async def retry_failed_sync(self) -> int:
        """Re-run failed replication tasks. Returns how many were retried."""
        return await self.context.sync_queue.retry_failed()
