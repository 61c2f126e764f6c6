"""
Biostore: Offline-first Biometric Identity Store

This package keeps face embeddings, a user registry and an offline session
in local storage, and replicates them on a best-effort basis to a remote
document store (see the api package).

Main components:
    - config: Configuration loading and management
    - persistence: Local SQLite storage with in-memory fallback
    - remote_sync: HTTP replication to the remote store and the sync queue
    - context: StoreContext owning the shared resources
    - registry: User registry with last-write-wins merges
    - embedding_store: Per-identity descriptor storage
    - session: Single-slot offline session
    - matcher: Euclidean descriptor comparison
    - store: BiometricStore facade
    - auth_flow: Enrollment and face login on top of the store

Usage:
    from biostore import BiometricStore, StoreContext, Embedding, now_ms

    async with BiometricStore(StoreContext(config)) as store:
        await store.save_embedding(Embedding("u1", descriptor, now_ms()))
"""

from biostore.config import (
    get_config,
    get_section,
    get_storage_config,
    get_sync_config,
    get_matching_config,
    get_api_config,
    get_logging_config,
    get_server_config,
    configure_logging,
)

from biostore.errors import BiometricStoreError, StorageUnavailable, RemoteUnreachable

from biostore.models import (
    DESCRIPTOR_LENGTH,
    Embedding,
    RegistryRecord,
    OfflineSession,
    IdentityAccount,
    now_ms,
)

from biostore.persistence import PersistenceAdapter
from biostore.remote_sync import RemoteSyncAdapter, SyncQueue, SyncTask
from biostore.context import StoreContext
from biostore.registry import RegistryManager
from biostore.embedding_store import EmbeddingStore
from biostore.session import SessionManager
from biostore.matcher import DEFAULT_THRESHOLD, MatchResult, compare_descriptors, euclidean_distance
from biostore.store import BiometricStore
from biostore.auth_flow import AuthOutcome, AuthResult, BiometricLogin, DescriptorExtractor

__all__ = [
    # Config
    "get_config",
    "get_section",
    "get_storage_config",
    "get_sync_config",
    "get_matching_config",
    "get_api_config",
    "get_logging_config",
    "get_server_config",
    "configure_logging",
    # Errors
    "BiometricStoreError",
    "StorageUnavailable",
    "RemoteUnreachable",
    # Models
    "DESCRIPTOR_LENGTH",
    "Embedding",
    "RegistryRecord",
    "OfflineSession",
    "IdentityAccount",
    "now_ms",
    # Storage and sync
    "PersistenceAdapter",
    "RemoteSyncAdapter",
    "SyncQueue",
    "SyncTask",
    "StoreContext",
    # Components
    "RegistryManager",
    "EmbeddingStore",
    "SessionManager",
    "DEFAULT_THRESHOLD",
    "MatchResult",
    "compare_descriptors",
    "euclidean_distance",
    "BiometricStore",
    # Login flow
    "AuthOutcome",
    "AuthResult",
    "BiometricLogin",
    "DescriptorExtractor",
]
