"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the remote
document store that biometric store clients replicate to.

The application provides:
- REST endpoints for the embeddings collection
- REST endpoints for the registry collection
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000 --reload

    # Or run directly:
    python -m api.app

    # In tests, with an injected document store:
    app = create_app(documents=PersistenceAdapter(tmp_path / "remote.sqlite"))

Author: CS-1
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from api.routes import embeddings_router, registry_router
from api.schemas import HealthResponse
from biostore.config import configure_logging, get_config, get_server_config
from biostore.persistence import EMBEDDINGS, REGISTRY, PersistenceAdapter

logger = logging.getLogger(__name__)


API_TITLE = "Biometric Identity Remote Store"
API_VERSION = "0.1.0"
DEFAULT_DB_PATH = "storage/remote.sqlite"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Open the server database from api.db_path (unless one was injected)

    Runs on shutdown:
    - Close the database if this handler opened it
    """
    logger.info("=" * 60)
    logger.info(f"Starting {API_TITLE}")
    logger.info("=" * 60)

    owned = app.state.documents is None
    if owned:
        api_config = get_config().get("api", {}) or {}
        db_path = api_config.get("db_path", DEFAULT_DB_PATH)
        app.state.documents = PersistenceAdapter(db_path)
        logger.info(f"Document store at {db_path}")

    documents = app.state.documents
    logger.info(
        f"Document store ready: {len(documents.items(EMBEDDINGS))} embeddings, "
        f"{len(documents.items(REGISTRY))} registry records"
    )

    yield

    logger.info("Shutting down API...")
    if owned:
        documents.close()
        app.state.documents = None
    logger.info("Shutdown complete")


def create_app(documents: Optional[PersistenceAdapter] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        documents: Storage for the collections. When None, the lifespan
                   handler opens api.db_path on startup.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=API_TITLE,
        description="""
Authoritative remote copy of the offline-first biometric identity store.

## Collections
- **/embeddings**: one 128-value face descriptor per identity
- **/registry**: account metadata and enrollment flag per identity

## Conflict handling
Writes are last-write-wins on `updated_at`. A PUT whose `updated_at` is
strictly older than the stored document is rejected with 409.
        """,
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.documents = documents

    # Configure CORS for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(embeddings_router)
    app.include_router(registry_router)

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    async def health_check(request: Request):
        """
        Check the health of the document store.

        Returns status of:
        - Storage backend (durable SQLite or in-memory fallback)
        - Number of documents per collection
        """
        store: PersistenceAdapter = request.app.state.documents
        backend = store.backend_kind(EMBEDDINGS)

        return HealthResponse(
            status="healthy" if backend == "durable" else "degraded",
            storage_backend=backend,
            embeddings=len(store.items(EMBEDDINGS)),
            registry_records=len(store.items(REGISTRY)),
        )

    @app.get("/", tags=["system"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": API_TITLE,
            "version": API_VERSION,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    configure_logging(config)
    server = get_server_config(config)

    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        reload=True,
        log_level="info",
    )
