"""
Persistence Adapter Module

Scoped local storage for the biometric identity store. Values live in three
independent namespaces (embeddings, registry, session) and are stored as JSON
text in a SQLite database file, one table per namespace.

Each namespace is bound lazily to a storage backend:

- DurableBackend: the SQLite table for the namespace
- InMemoryBackend: a process-local dict

If the database cannot be opened or the namespace table cannot be created,
the namespace stays on its InMemoryBackend for the lifetime of the adapter
and a single warning is logged for it. Operations that fail on the durable
backend later are served from memory instead. Every successful write is
mirrored into memory, so a failed durable read still returns what this
process last wrote. Callers never see storage errors.

Usage:
    from biostore.persistence import PersistenceAdapter

    adapter = PersistenceAdapter(db_path="storage/biometrics.sqlite")
    adapter.set("session", "offline-session", {"identity_id": "u1"})
    adapter.get("session", "offline-session")

Author: CS-1
"""

import json
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set, Union

from biostore.errors import StorageUnavailable

logger = logging.getLogger(__name__)


EMBEDDINGS = "embeddings"
REGISTRY = "registry"
SESSION = "session"

_NAMESPACE_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass
class InMemoryBackend:
    """Process-local key/value map for one namespace."""

    data: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)

    def items(self) -> Dict[str, str]:
        return dict(self.data)


@dataclass
class DurableBackend:
    """SQLite-backed key/value table for one namespace."""

    connection: sqlite3.Connection
    namespace: str

    @property
    def table(self) -> str:
        return f"store_{self.namespace}"

    def create_table(self) -> None:
        self._execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                written_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """, (), commit=True)

    def get(self, key: str) -> Optional[str]:
        cursor = self._execute(f"SELECT value FROM {self.table} WHERE key = ?", (key,))
        row = cursor.fetchone()
        return row[0] if row is not None else None

    def set(self, key: str, value: str) -> None:
        self._execute(f"""
            INSERT INTO {self.table} (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                           written_at = CURRENT_TIMESTAMP
        """, (key, value), commit=True)

    def remove(self, key: str) -> None:
        self._execute(f"DELETE FROM {self.table} WHERE key = ?", (key,), commit=True)

    def items(self) -> Dict[str, str]:
        cursor = self._execute(f"SELECT key, value FROM {self.table}", ())
        return {row[0]: row[1] for row in cursor.fetchall()}

    def _execute(self, sql: str, params: tuple, commit: bool = False):
        try:
            cursor = self.connection.execute(sql, params)
            if commit:
                self.connection.commit()
            return cursor
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(self.namespace, str(e)) from e


StorageBackend = Union[DurableBackend, InMemoryBackend]


class PersistenceAdapter:
    """
    Best-effort local storage with automatic in-memory fallback.

    Attributes:
        db_path: Path to the SQLite database file.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        connect: Callable[..., sqlite3.Connection] = sqlite3.connect,
    ):
        """
        Initialize the adapter. Nothing is opened until a namespace is first used.

        Args:
            db_path: Path to the SQLite database file.
            connect: Connection factory, called as connect(path, check_same_thread=False).
        """
        self.db_path = Path(db_path)
        self._connect = connect
        self._conn: Optional[sqlite3.Connection] = None
        self._connect_failed = False

        self._backends: Dict[str, StorageBackend] = {}
        self._memory: Dict[str, InMemoryBackend] = {}
        self._degraded: Set[str] = set()

    # ------------------------------------------------------------------
    # Backend binding
    # ------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        """Open the database on first use."""
        if self._conn is None:
            if self._connect_failed:
                raise StorageUnavailable("*", "database previously failed to open")
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = self._connect(str(self.db_path), check_same_thread=False)
            except (sqlite3.Error, OSError) as e:
                self._connect_failed = True
                raise StorageUnavailable("*", f"cannot open {self.db_path}: {e}") from e
        return self._conn

    def _memory_for(self, namespace: str) -> InMemoryBackend:
        if namespace not in self._memory:
            self._memory[namespace] = InMemoryBackend()
        return self._memory[namespace]

    def _backend(self, namespace: str) -> StorageBackend:
        """Return the backend bound to a namespace, binding it on first use."""
        backend = self._backends.get(namespace)
        if backend is not None:
            return backend

        if not _NAMESPACE_PATTERN.match(namespace):
            raise ValueError(f"Invalid namespace: {namespace!r}")

        try:
            backend = DurableBackend(self._get_connection(), namespace)
            backend.create_table()
            logger.debug(f"Namespace '{namespace}' bound to {self.db_path}")
        except StorageUnavailable as e:
            logger.warning(
                f"Durable storage unavailable for namespace '{namespace}', "
                f"using in-memory fallback: {e}"
            )
            backend = self._memory_for(namespace)

        self._backends[namespace] = backend
        return backend

    def _dispatch(self, namespace: str, action: Callable[[StorageBackend], Any]) -> Any:
        """
        Run an action on the namespace backend, falling back to memory.

        The durable backend is tried first; on StorageUnavailable the same
        action runs against the namespace's in-memory map.
        """
        backend = self._backend(namespace)
        memory = self._memory_for(namespace)

        if isinstance(backend, InMemoryBackend):
            return action(memory)

        try:
            return action(backend)
        except StorageUnavailable as e:
            if namespace not in self._degraded:
                self._degraded.add(namespace)
                logger.warning(f"Durable storage operation failed, serving from memory: {e}")
            else:
                logger.debug(f"Durable storage operation failed again: {e}")
            return action(memory)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        """
        Read a value.

        Returns:
            The decoded value, or default if the key is absent.
        """
        raw = self._dispatch(namespace, lambda b: b.get(key))
        if raw is None:
            return default

        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"Discarding undecodable value at {namespace}/{key}")
            return default

    def set(self, namespace: str, key: str, value: Any) -> bool:
        """
        Write a value.

        Args:
            value: Any JSON-serialisable object.

        Returns:
            True once the value is visible to subsequent reads.

        Raises:
            TypeError: If the value is not JSON serialisable.
        """
        raw = json.dumps(value)
        self._dispatch(namespace, lambda b: b.set(key, raw))
        self._memory_for(namespace).set(key, raw)
        return True

    def remove(self, namespace: str, key: str) -> bool:
        """Delete a key if present. Returns True once the key is gone."""
        self._dispatch(namespace, lambda b: b.remove(key))
        self._memory_for(namespace).remove(key)
        return True

    def items(self, namespace: str) -> Dict[str, Any]:
        """Return every key/value pair of a namespace, decoded."""
        decoded = {}
        for key, raw in self._dispatch(namespace, lambda b: b.items()).items():
            try:
                decoded[key] = json.loads(raw)
            except ValueError:
                logger.error(f"Discarding undecodable value at {namespace}/{key}")
        return decoded

    def backend_kind(self, namespace: str) -> str:
        """Return "durable" or "memory" for the backend bound to a namespace."""
        backend = self._backend(namespace)
        return "durable" if isinstance(backend, DurableBackend) else "memory"

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Failed to close database {self.db_path}: {e}")
            self._conn = None
            self._backends.clear()
            logger.debug("Database connection closed")
