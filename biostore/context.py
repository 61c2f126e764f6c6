"""
Store Context Module

StoreContext is built once at process or session start and passed to every
store component. It owns the shared resources (the local PersistenceAdapter,
the httpx client for the remote store, one RemoteSyncAdapter per remote
collection, and the SyncQueue) and creates each of them lazily on first use.

Usage:
    from biostore.context import StoreContext

    context = StoreContext(config)
    context.persistence.get("session", "offline-session")
    ...
    await context.aclose()
"""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from biostore.config import get_config
from biostore.persistence import PersistenceAdapter
from biostore.remote_sync import RemoteSyncAdapter, SyncQueue, SyncTask

logger = logging.getLogger(__name__)


DEFAULT_DB_PATH = "storage/biometrics.sqlite"
DEFAULT_BASE_URL = "http://localhost:8000"


class StoreContext:
    """
    Shared resources of one store instance.

    Attributes:
        config: Parsed configuration (see config.yaml).
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        persistence: Optional[PersistenceAdapter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Configuration dict. Defaults to get_config().
            persistence: Pre-built local storage (tests, embedding applications).
            http_client: Pre-built client for the remote store. When given,
                         remote sync is used regardless of sync.enabled.
        """
        self.config = config if config is not None else get_config()
        self.storage_config = self.config.get("storage", {}) or {}
        self.sync_config = self.config.get("sync", {}) or {}
        self.matching_config = self.config.get("matching", {}) or {}

        self._persistence = persistence
        self._http_client = http_client
        self._owns_client = http_client is None
        self._client_initialized = http_client is not None
        self._remotes: Dict[str, RemoteSyncAdapter] = {}
        self._sync_queue: Optional[SyncQueue] = None

    @property
    def persistence(self) -> PersistenceAdapter:
        if self._persistence is None:
            db_path = Path(self.storage_config.get("db_path", DEFAULT_DB_PATH))
            self._persistence = PersistenceAdapter(db_path)
            logger.info(f"Local store at {db_path}")
        return self._persistence

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        """Client for the remote store, or None when remote sync is disabled."""
        if not self._client_initialized:
            self._client_initialized = True
            if self.sync_config.get("enabled", False):
                base_url = self.sync_config.get("base_url", DEFAULT_BASE_URL)
                self._http_client = httpx.AsyncClient(
                    base_url=base_url,
                    timeout=float(self.sync_config.get("timeout_sec", 5.0)),
                )
                logger.info(f"Remote sync enabled against {base_url}")
            else:
                logger.info("Remote sync disabled; local store is authoritative")
        return self._http_client

    def remote(self, collection: str) -> RemoteSyncAdapter:
        """Return the RemoteSyncAdapter for a remote collection."""
        if collection not in self._remotes:
            self._remotes[collection] = RemoteSyncAdapter(self.http_client, collection)
        return self._remotes[collection]

    @property
    def sync_queue(self) -> SyncQueue:
        if self._sync_queue is None:
            self._sync_queue = SyncQueue(
                max_history=int(self.sync_config.get("max_history", 100))
            )
        return self._sync_queue

    def replicate(
        self,
        operation: str,
        collection: str,
        identity_id: str,
        factory: Callable[[], Awaitable[bool]],
    ) -> Optional[SyncTask]:
        """
        Queue the remote half of a local write.

        Returns:
            The queued SyncTask, or None when remote sync is disabled.
        """
        if self.http_client is None:
            return None
        return self.sync_queue.enqueue(operation, collection, identity_id, factory)

    async def aclose(self) -> None:
        """Wait for in-flight replication, then release the client and database."""
        if self._sync_queue is not None:
            await self._sync_queue.drain()
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            self._client_initialized = False
            self._remotes.clear()
        if self._persistence is not None:
            self._persistence.close()
