"""
Error types for the biometric identity store.

Storage and network failures are raised inside the persistence and sync
layers and caught at their boundaries; they never reach callers of the
public store surface. Negative outcomes (absent record, no face, no match)
are return values, not exceptions.
"""


class BiometricStoreError(Exception):
    """Base class for store errors."""


class StorageUnavailable(BiometricStoreError):
    """The durable local backend failed to open or an operation on it failed."""

    def __init__(self, namespace: str, message: str):
        self.namespace = namespace
        super().__init__(f"[{namespace}] {message}")


class RemoteUnreachable(BiometricStoreError):
    """A push, pull or delete against the remote store failed."""

    def __init__(self, collection: str, message: str, status_code: int = None):
        self.collection = collection
        self.status_code = status_code
        super().__init__(f"[{collection}] {message}")
