"""
Registry Collection API Routes

This module provides REST endpoints for the registry collection:
- GET /registry: List every registry record
- GET /registry/{identity_id}: Get one record
- PUT /registry/{identity_id}: Store a record (409 if the stored one is newer)
- DELETE /registry/{identity_id}: Delete a record

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
from api.schemas import DeleteResponse, DocumentListResponse, RegistryDocument
from biostore.persistence import REGISTRY, PersistenceAdapter

router = APIRouter(prefix="/registry", tags=["registry"])


@router.get("", response_model=DocumentListResponse)
async def list_registry(documents: PersistenceAdapter = Depends(get_documents)):
    """List every registry record, keyed by identity_id."""
    return list_documents(documents, REGISTRY)


@router.get("/{identity_id}", response_model=RegistryDocument)
async def get_record(identity_id: str, documents: PersistenceAdapter = Depends(get_documents)):
    """Get the registry record of an identity (404 if absent)."""
    return read_document(documents, REGISTRY, identity_id)


@router.put("/{identity_id}", response_model=RegistryDocument)
async def put_record(
    identity_id: str,
    record: RegistryDocument,
    documents: PersistenceAdapter = Depends(get_documents),
):
    """Store a registry record unless the stored one is strictly newer (409)."""
    return write_document(documents, REGISTRY, identity_id, record.model_dump())


@router.delete("/{identity_id}", response_model=DeleteResponse)
async def delete_record(identity_id: str, documents: PersistenceAdapter = Depends(get_documents)):
    return delete_document(documents, REGISTRY, identity_id)
