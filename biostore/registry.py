"""
Registry Manager Module

Maintains the mapping of identity to account metadata and enrollment flag.

Locally the whole registry is one aggregate document stored under the key
"users" in the registry namespace, so a listing is a single read. Writes are
whole-record last-write-wins on updated_at: concurrent edits to different
fields of the same record are not merged, the later timestamp replaces the
earlier record.

Usage:
    registry = RegistryManager(context)
    await registry.upsert("u1", email="a@example.com")
    records = await registry.list_all()
"""

import logging
from typing import Any, Dict, List, Optional

from biostore.context import StoreContext
from biostore.models import RegistryRecord, now_ms
from biostore.persistence import REGISTRY

logger = logging.getLogger(__name__)


USERS_KEY = "users"


def sort_records(records) -> List[RegistryRecord]:
    """Order by updated_at descending, ties by identity_id ascending."""
    return sorted(records, key=lambda r: (-r.updated_at, r.identity_id))


class RegistryManager:
    """Local-first registry with best-effort remote replication."""

    def __init__(self, context: StoreContext):
        self.context = context
        self.remote = context.remote(REGISTRY)

    def _load(self) -> Dict[str, RegistryRecord]:
        raw = self.context.persistence.get(REGISTRY, USERS_KEY, default={})
        if not isinstance(raw, dict):
            logger.error("Local registry document is not a mapping; ignoring it")
            return {}

        records = {}
        for identity_id, data in raw.items():
            try:
                records[identity_id] = RegistryRecord.from_dict(data)
            except ValueError as e:
                logger.error(f"Discarding malformed registry record {identity_id}: {e}")
        return records

    def _store(self, records: Dict[str, RegistryRecord]) -> None:
        self.context.persistence.set(
            REGISTRY, USERS_KEY, {k: r.to_dict() for k, r in records.items()}
        )

    def get(self, identity_id: str) -> Optional[RegistryRecord]:
        """Return the local record for an identity, or None."""
        return self._load().get(identity_id)

    async def upsert(
        self,
        identity_id: str,
        updated_at: Optional[int] = None,
        **fields: Any,
    ) -> RegistryRecord:
        """
        Merge fields onto the record for an identity and stamp its freshness.

        The record is created with enrolled=False if it does not exist yet.

        Args:
            identity_id: Identity to update.
            updated_at: Timestamp of the write. When omitted the record is
                        stamped with the current time (always later than the
                        stored timestamp). When given, the write only applies if
                        it is strictly newer than the stored record.
            **fields: Any of email, display_name, photo_url, enrolled.

        Returns:
            The record visible after the call.

        Raises:
            ValueError: If an unknown field is passed.
        """
        unknown = set(fields) - set(RegistryRecord.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown registry fields: {sorted(unknown)}")

        records = self._load()
        existing = records.get(identity_id)

        if updated_at is None:
            floor = existing.updated_at + 1 if existing else 0
            updated_at = max(now_ms(), floor)
        elif existing is not None and updated_at <= existing.updated_at:
            logger.info(
                f"Ignoring stale registry write for {identity_id} "
                f"({updated_at} <= {existing.updated_at})"
            )
            return existing

        base = existing.to_dict() if existing else RegistryRecord(identity_id).to_dict()
        base.update(fields)
        base["updated_at"] = int(updated_at)
        record = RegistryRecord.from_dict(base)

        records[identity_id] = record
        self._store(records)
        logger.info(f"Registry updated for {identity_id}")

        document = record.to_dict()
        self.context.replicate(
            "push", REGISTRY, identity_id, lambda: self.remote.push(document)
        )
        return record

    def remove(self, identity_id: str) -> bool:
        """
        Remove a record from the local registry.

        Returns:
            True if the record existed.
        """
        records = self._load()
        if records.pop(identity_id, None) is None:
            return False
        self._store(records)
        logger.info(f"Removed {identity_id} from local registry")
        return True

    async def list_all(self) -> List[RegistryRecord]:
        """
        List every registered identity.

        Pending replication is flushed first, then the remote listing is pulled.
        When the pull succeeds the remote mapping replaces the local one
        (identities whose remote deletion is unconfirmed are left out) and is
        written back. Otherwise the local mapping is used.
        """
        queue = self.context.sync_queue
        await queue.drain()

        remote = await self.remote.pull_all()
        if remote is None:
            logger.debug("Listing registry from local store")
            return sort_records(self._load().values())

        deleted = queue.pending_deletions()
        records = {}
        for identity_id, data in remote.items():
            if identity_id in deleted:
                continue
            try:
                records[identity_id] = RegistryRecord.from_dict(data)
            except ValueError as e:
                logger.error(f"Discarding malformed remote registry record {identity_id}: {e}")

        self._store(records)
        logger.debug(f"Registry refreshed from remote ({len(records)} records)")
        return sort_records(records.values())
