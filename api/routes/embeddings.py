"""
Embedding Collection API Routes

This module provides REST endpoints for the embeddings collection:
- GET /embeddings: List every stored embedding
- GET /embeddings/{identity_id}: Get one embedding
- PUT /embeddings/{identity_id}: Store an embedding (409 if the stored one is newer)
- DELETE /embeddings/{identity_id}: Delete an embedding

Author: CS-1
"""

from fastapi import APIRouter, Depends

from api.routes.common import (
    delete_document,
    get_documents,
    list_documents,
    read_document,
    write_document,
)
from api.schemas import DeleteResponse, DocumentListResponse, EmbeddingDocument
from biostore.persistence import EMBEDDINGS, PersistenceAdapter

# Create router
router = APIRouter(prefix="/embeddings", tags=["embeddings"])


@router.get("", response_model=DocumentListResponse)
async def list_embeddings(documents: PersistenceAdapter = Depends(get_documents)):
    """List every stored embedding, keyed by identity_id."""
    return list_documents(documents, EMBEDDINGS)


@router.get("/{identity_id}", response_model=EmbeddingDocument)
async def get_embedding(
    identity_id: str, documents: PersistenceAdapter = Depends(get_documents)
):
    """
    Get the embedding stored for an identity.

    Raises:
        404: If no embedding is stored.
    """
    return read_document(documents, EMBEDDINGS, identity_id)


@router.put("/{identity_id}", response_model=EmbeddingDocument)
async def put_embedding(
    identity_id: str,
    embedding: EmbeddingDocument,
    documents: PersistenceAdapter = Depends(get_documents),
):
    """
    Store an embedding, replacing the previous one.

    Raises:
        400: If the path and body identity differ.
        409: If the stored embedding is strictly newer.
        422: If the descriptor does not have the expected length.
    """
    return write_document(documents, EMBEDDINGS, identity_id, embedding.model_dump())


@router.delete("/{identity_id}", response_model=DeleteResponse)
async def delete_embedding(
    identity_id: str, documents: PersistenceAdapter = Depends(get_documents)
):
    """
    Delete the embedding stored for an identity.

    Raises:
        404: If no embedding is stored.
    """
    return delete_document(documents, EMBEDDINGS, identity_id)
