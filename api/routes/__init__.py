"""
API Routes Package

This package contains route handlers organized by collection:
- embeddings.py: REST endpoints for the embeddings collection
- registry.py: REST endpoints for the registry collection
- common.py: last-write-wins storage helpers shared by both

Author: CS-1
"""

from api.routes.embeddings import router as embeddings_router
from api.routes.registry import router as registry_router

__all__ = [
    "embeddings_router",
    "registry_router",
]
