"""
Shared fixtures for the biometric store tests.

- offline_context: StoreContext on a temporary SQLite file, remote sync off
- remote_documents / remote_client: the api app served in-process through
  httpx.ASGITransport, backed by its own temporary database
- synced_context: StoreContext replicating to that in-process remote
- unreachable_client: httpx client whose every request fails to connect
"""

import os
import sys
import sqlite3
import tempfile
import shutil
from pathlib import Path

import httpx
import numpy as np
import pytest
import pytest_asyncio

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.app import create_app
from biostore.context import StoreContext
from biostore.models import DESCRIPTOR_LENGTH
from biostore.persistence import PersistenceAdapter


TEST_CONFIG = {
    "storage": {"db_path": "unused.sqlite"},
    "sync": {"enabled": False, "max_history": 100},
    "matching": {"threshold": 0.45, "descriptor_length": DESCRIPTOR_LENGTH},
}


def make_descriptor(seed: int = 0, scale: float = 0.1) -> list:
    """Deterministic pseudo-random descriptor."""
    rng = np.random.default_rng(seed)
    return rng.normal(0.0, scale, DESCRIPTOR_LENGTH).tolist()


def offset_descriptor(base, distance: float) -> list:
    """Return a descriptor exactly `distance` away from base (along the first axis)."""
    shifted = list(base)
    shifted[0] += distance
    return shifted


class FlakyConnection:
    """sqlite3 connection wrapper that starts failing once `broken` is set."""

    def __init__(self, connection: sqlite3.Connection):
        self._connection = connection
        self.broken = False

    def execute(self, sql, params=()):
        if self.broken:
            raise sqlite3.OperationalError("disk I/O error")
        return self._connection.execute(sql, params)

    def commit(self):
        if self.broken:
            raise sqlite3.OperationalError("disk I/O error")
        self._connection.commit()

    def close(self):
        self._connection.close()


def failing_connect(*args, **kwargs):
    raise sqlite3.OperationalError("unable to open database file")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test databases."""
    dirpath = tempfile.mkdtemp()
    yield Path(dirpath)
    shutil.rmtree(dirpath, ignore_errors=True)


@pytest.fixture
def local_store(temp_dir):
    """PersistenceAdapter on a temporary database file."""
    adapter = PersistenceAdapter(temp_dir / "local.sqlite")
    yield adapter
    adapter.close()


@pytest.fixture
def offline_context(local_store):
    """StoreContext with remote sync disabled."""
    return StoreContext(TEST_CONFIG, persistence=local_store)


@pytest.fixture
def remote_documents(temp_dir):
    """Server-side document store of the in-process remote."""
    adapter = PersistenceAdapter(temp_dir / "remote.sqlite")
    yield adapter
    adapter.close()


@pytest_asyncio.fixture
async def remote_client(remote_documents):
    """httpx client talking to the api app in-process."""
    app = create_app(documents=remote_documents)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture
async def synced_context(local_store, remote_client):
    """StoreContext replicating to the in-process remote."""
    context = StoreContext(TEST_CONFIG, persistence=local_store, http_client=remote_client)
    yield context
    await context.sync_queue.drain()


@pytest_asyncio.fixture
async def unreachable_client():
    """httpx client whose requests always fail to connect."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://remote.invalid"
    ) as client:
        yield client
