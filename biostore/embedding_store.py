"""
Embedding Store Module

Per-identity descriptor persistence with a read-through / write-through
policy over the local store and the remote store.

- save: local write, queued remote push, registry marked enrolled
- get: local read, remote pull on a miss (written back locally on a hit)
- delete: local removal of embedding and registry entry, queued remote
  deletion of both documents

Writes are not transactional: each step is attempted even if an earlier one
only partially succeeded, and remote steps never block the caller.

Author: CS-1
"""

import logging
from typing import Optional

from biostore.context import StoreContext
from biostore.models import Embedding
from biostore.persistence import EMBEDDINGS, REGISTRY
from biostore.registry import RegistryManager

logger = logging.getLogger(__name__)


class EmbeddingStore:
    """Stores one face embedding per identity."""

    def __init__(self, context: StoreContext, registry: RegistryManager):
        self.context = context
        self.registry = registry
        self.remote = context.remote(EMBEDDINGS)

    def _load_local(self, identity_id: str) -> Optional[Embedding]:
        raw = self.context.persistence.get(EMBEDDINGS, identity_id)
        if raw is None:
            return None
        try:
            return Embedding.from_dict(raw)
        except ValueError as e:
            logger.error(f"Discarding malformed local embedding for {identity_id}: {e}")
            return None

    async def save(self, embedding: Embedding) -> bool:
        """
        Store an embedding, replacing any previous one for the identity.

        Args:
            embedding: Embedding to store.

        Returns:
            True if the embedding was written, False if the stored embedding is
            strictly newer (the save is then dropped entirely).
        """
        identity_id = embedding.identity_id
        existing = self._load_local(identity_id)
        if existing is not None and embedding.updated_at < existing.updated_at:
            logger.info(
                f"Ignoring stale embedding for {identity_id} "
                f"({embedding.updated_at} < {existing.updated_at})"
            )
            return False

        document = embedding.to_dict()
        self.context.persistence.set(EMBEDDINGS, identity_id, document)
        logger.info(f"Saved embedding for {identity_id}")

        self.context.replicate(
            "push", EMBEDDINGS, identity_id, lambda: self.remote.push(document)
        )

        # The enrolled flag must land even if the record was edited after the capture
        record = self.registry.get(identity_id)
        stamp = embedding.updated_at
        if record is not None and record.updated_at >= stamp:
            stamp = record.updated_at + 1
        await self.registry.upsert(identity_id, updated_at=stamp, enrolled=True)
        return True

    async def get(self, identity_id: str) -> Optional[Embedding]:
        """
        Load the embedding for an identity.

        A local miss falls through to the remote, except for identities whose
        remote deletion is still unconfirmed.

        Returns:
            The embedding, or None if neither tier has it.
        """
        embedding = self._load_local(identity_id)
        if embedding is not None:
            return embedding

        if identity_id in self.context.sync_queue.pending_deletions():
            logger.debug(f"Remote deletion of {identity_id} unconfirmed, not pulling it back")
            return None

        document = await self.remote.pull_one(identity_id)
        if document is None:
            return None

        try:
            embedding = Embedding.from_dict(document)
        except ValueError as e:
            logger.warning(f"Remote embedding for {identity_id} is malformed: {e}")
            return None

        if embedding.identity_id != identity_id:
            logger.warning(
                f"Remote embedding for {identity_id} belongs to {embedding.identity_id}"
            )
            return None

        self.context.persistence.set(EMBEDDINGS, identity_id, embedding.to_dict())
        logger.info(f"Cached remote embedding for {identity_id}")
        return embedding

    async def delete(self, identity_id: str) -> None:
        """
        Delete an identity's embedding and registry record.

        The local deletion is effective immediately. The remote deletion of both
        documents runs as one queued task; if either fails a partial deletion is
        logged and the task stays failed until retried.
        """
        self.context.persistence.remove(EMBEDDINGS, identity_id)
        self.registry.remove(identity_id)
        logger.info(f"Deleted local records for {identity_id}")

        self.context.replicate(
            "delete", "identity", identity_id, lambda: self._delete_remote(identity_id)
        )

    async def _delete_remote(self, identity_id: str) -> bool:
        embedding_deleted = await self.remote.delete(identity_id)
        registry_deleted = await self.registry.remote.delete(identity_id)

        if not (embedding_deleted and registry_deleted):
            failed = [
                name
                for name, ok in ((EMBEDDINGS, embedding_deleted), (REGISTRY, registry_deleted))
                if not ok
            ]
            logger.warning(
                f"Partial deletion of {identity_id}: remote {', '.join(failed)} "
                "may still hold stale copies"
            )
            return False
        return True
