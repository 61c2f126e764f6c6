"""
Remote Sync Module

Best-effort replication between the local store and the authoritative
remote document store (served by the api package).

RemoteSyncAdapter talks to one remote collection over HTTP:

    PUT    /{collection}/{identity_id}   push a document
    GET    /{collection}/{identity_id}   pull one document (404 = absent)
    GET    /{collection}                 pull every document
    DELETE /{collection}/{identity_id}   delete a document (404 = already gone)

None of its methods raise: failures are logged and reported through the
return value (False / None).

SyncQueue runs the remote half of every local write as an asyncio task and
keeps a record of each task so pending and failed replication stays
observable. Failed tasks are never retried automatically; retry_failed()
re-runs them on demand. Enqueuing a push marks every unsettled delete of
the same identity as superseded (and a delete does the same to unsettled
pushes), so a retry never replays an operation a later one has undone.

Usage:
    client = httpx.AsyncClient(base_url="http://localhost:8000", timeout=5.0)
    remote = RemoteSyncAdapter(client, "embeddings")
    queue = SyncQueue()

    queue.enqueue("push", "embeddings", "u1", lambda: remote.push(doc))
    await queue.drain()
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx

from biostore.errors import RemoteUnreachable
from biostore.models import now_ms

logger = logging.getLogger(__name__)


PENDING = "pending"
SUCCEEDED = "succeeded"
FAILED = "failed"
SUPERSEDED = "superseded"

# A push undoes an earlier delete of the same identity and vice versa
OPPOSITE_OPERATION = {"push": "delete", "delete": "push"}


class RemoteSyncAdapter:
    """
    HTTP client for one collection of the remote document store.

    Attributes:
        client: Shared httpx.AsyncClient, or None when remote sync is disabled.
        collection: Remote collection name ("embeddings" or "registry").
    """

    def __init__(self, client: Optional[httpx.AsyncClient], collection: str):
        self.client = client
        self.collection = collection

    @property
    def available(self) -> bool:
        return self.client is not None

    def _path(self, identity_id: Optional[str] = None) -> str:
        if identity_id is None:
            return f"/{self.collection}"
        return f"/{self.collection}/{identity_id}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteUnreachable(self.collection, f"{method} {path} failed: {e}") from e

    @staticmethod
    def _decode(response: httpx.Response, collection: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteUnreachable(
                collection, f"undecodable response body: {e}", response.status_code
            ) from e

    def _unexpected(self, response: httpx.Response) -> RemoteUnreachable:
        return RemoteUnreachable(
            self.collection,
            f"{response.request.method} {response.request.url.path} "
            f"returned {response.status_code}",
            response.status_code,
        )

    async def push(self, document: Dict[str, Any]) -> bool:
        """
        Upload a document, replacing the remote copy.

        A 409 means the remote already holds a strictly newer copy; the push is
        then considered settled rather than failed.

        Returns:
            True if the remote copy is at least as fresh as the document.
        """
        if not self.available:
            logger.debug(f"Remote sync disabled, skipping push to {self.collection}")
            return False

        identity_id = document["identity_id"]
        try:
            response = await self._request("PUT", self._path(identity_id), json=document)
            if response.status_code == 409:
                logger.info(
                    f"Remote {self.collection}/{identity_id} is newer than the pushed copy"
                )
                return True
            if response.is_error:
                raise self._unexpected(response)
        except RemoteUnreachable as e:
            logger.warning(f"Remote push failed: {e}")
            return False

        logger.debug(f"Pushed {self.collection}/{identity_id}")
        return True

    async def pull_one(self, identity_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document. Returns None if absent or unreachable."""
        if not self.available:
            return None

        try:
            response = await self._request("GET", self._path(identity_id))
            if response.status_code == 404:
                logger.debug(f"Remote {self.collection}/{identity_id} not found")
                return None
            if response.is_error:
                raise self._unexpected(response)
            document = self._decode(response, self.collection)
        except RemoteUnreachable as e:
            logger.warning(f"Remote pull failed: {e}")
            return None

        if not isinstance(document, dict):
            logger.warning(f"Remote {self.collection}/{identity_id} returned a non-object body")
            return None
        return document

    async def pull_all(self) -> Optional[Dict[str, Dict[str, Any]]]:
        """
        Fetch every document of the collection.

        Returns:
            Mapping of identity_id to document, or None if the remote could
            not be read. An empty remote yields an empty dict.
        """
        if not self.available:
            return None

        try:
            response = await self._request("GET", self._path())
            if response.is_error:
                raise self._unexpected(response)
            body = self._decode(response, self.collection)
        except RemoteUnreachable as e:
            logger.warning(f"Remote listing failed: {e}")
            return None

        documents = body.get("documents") if isinstance(body, dict) else None
        if not isinstance(documents, dict):
            logger.warning(f"Remote {self.collection} listing has no 'documents' mapping")
            return None
        return documents

    async def delete(self, identity_id: str) -> bool:
        """Delete one document. A missing document counts as deleted."""
        if not self.available:
            logger.debug(f"Remote sync disabled, skipping delete in {self.collection}")
            return False

        try:
            response = await self._request("DELETE", self._path(identity_id))
            if response.is_error and response.status_code != 404:
                raise self._unexpected(response)
        except RemoteUnreachable as e:
            logger.warning(f"Remote delete failed: {e}")
            return False

        logger.debug(f"Deleted remote {self.collection}/{identity_id}")
        return True


@dataclass
class SyncTask:
    """
    Record of one remote replication task.

    Attributes:
        task_id: Sequential id within the queue.
        operation: "push" or "delete".
        collection: Target collection, or "identity" for whole-identity deletes.
        identity_id: Identity the task replicates.
        status: "pending", "succeeded", "failed" or "superseded".
        attempts: Number of times the task has run.
        superseded_by: task_id of the later task that undid this one.
    """

    task_id: int
    operation: str
    collection: str
    identity_id: str
    factory: Callable[[], Awaitable[bool]] = field(repr=False, compare=False)
    status: str = PENDING
    attempts: int = 0
    created_at: int = field(default_factory=now_ms)
    finished_at: Optional[int] = None
    superseded_by: Optional[int] = None


class SyncQueue:
    """
    Observable queue of fire-and-forget remote replication tasks.

    Tasks run on the current event loop as soon as they are enqueued. The
    caller never awaits them; drain() exists for shutdown, listings and tests.
    """

    def __init__(self, max_history: int = 100):
        self.max_history = max_history
        self._tasks: List[SyncTask] = []
        self._running: Dict[int, asyncio.Task] = {}
        self._ids = itertools.count(1)

    @property
    def tasks(self) -> List[SyncTask]:
        return list(self._tasks)

    @property
    def pending(self) -> List[SyncTask]:
        return [t for t in self._tasks if t.status == PENDING]

    @property
    def failed(self) -> List[SyncTask]:
        return [t for t in self._tasks if t.status == FAILED]

    def enqueue(
        self,
        operation: str,
        collection: str,
        identity_id: str,
        factory: Callable[[], Awaitable[bool]],
    ) -> SyncTask:
        """
        Schedule a remote call on the running event loop.

        Args:
            factory: Zero-argument callable returning an awaitable that resolves
                     to True on success. Called again by retry_failed().

        Returns:
            The SyncTask record, initially pending.
        """
        task = SyncTask(
            task_id=next(self._ids),
            operation=operation,
            collection=collection,
            identity_id=identity_id,
            factory=factory,
        )
        self._supersede(task)
        self._tasks.append(task)
        self._start(task)
        return task

    def _supersede(self, task: SyncTask) -> None:
        """Mark unsettled tasks that the new task undoes as superseded."""
        opposite = OPPOSITE_OPERATION.get(task.operation)
        for earlier in self._tasks:
            if (
                earlier.identity_id == task.identity_id
                and earlier.operation == opposite
                and earlier.status in (PENDING, FAILED)
            ):
                earlier.status = SUPERSEDED
                earlier.superseded_by = task.task_id
                logger.info(
                    f"Sync task {earlier.task_id} ({earlier.operation} "
                    f"{earlier.collection}/{earlier.identity_id}) superseded by "
                    f"{task.operation} task {task.task_id}"
                )

    def _start(self, task: SyncTask) -> None:
        task.status = PENDING
        task.finished_at = None
        self._running[task.task_id] = asyncio.get_running_loop().create_task(self._run(task))

    async def _run(self, task: SyncTask) -> None:
        task.attempts += 1
        try:
            ok = await task.factory()
        except Exception:
            logger.exception(
                f"Sync task {task.task_id} ({task.operation} {task.collection}/"
                f"{task.identity_id}) raised"
            )
            ok = False
        finally:
            self._running.pop(task.task_id, None)

        task.finished_at = now_ms()
        if task.status == SUPERSEDED:
            # Undone while in flight; the outcome no longer matters
            self._prune()
            return

        task.status = SUCCEEDED if ok else FAILED
        if not ok:
            logger.warning(
                f"Sync task {task.task_id} failed: {task.operation} "
                f"{task.collection}/{task.identity_id} (attempt {task.attempts})"
            )
        self._prune()

    def _prune(self) -> None:
        """Drop the oldest settled tasks once history exceeds max_history."""
        excess = len(self._tasks) - self.max_history
        if excess <= 0:
            return
        kept = []
        for task in self._tasks:
            settled = task.status == SUCCEEDED or (
                task.status == SUPERSEDED and task.task_id not in self._running
            )
            if excess > 0 and settled:
                excess -= 1
                continue
            kept.append(task)
        self._tasks = kept

    async def drain(self) -> None:
        """Wait until every in-flight task has finished."""
        while self._running:
            await asyncio.gather(*list(self._running.values()))

    async def retry_failed(self) -> int:
        """
        Re-run every failed task and wait for the results.

        Superseded tasks are not failed and are never re-run.

        Returns:
            Number of tasks that were retried.
        """
        failed = self.failed
        for task in failed:
            self._start(task)
        await self.drain()
        return len(failed)

    def pending_deletions(self) -> Set[str]:
        """
        Identities whose remote deletion has not been confirmed.

        A delete counts while it is pending or failed. A later push for the
        same identity marks it superseded, which ends it.
        """
        return {
            task.identity_id
            for task in self._tasks
            if task.operation == "delete" and task.status in (PENDING, FAILED)
        }

    def status(self) -> Dict[str, int]:
        return {
            "pending": len(self.pending),
            "failed": len(self.failed),
            "superseded": sum(1 for t in self._tasks if t.status == SUPERSEDED),
            "total": len(self._tasks),
        }
