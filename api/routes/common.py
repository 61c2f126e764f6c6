"""
Shared helpers for the document collection routes.

Each collection lives in one namespace of the server's PersistenceAdapter
(request.app.state.documents), keyed by identity_id. Writes are
last-write-wins on updated_at: a PUT carrying a strictly older timestamp than
the stored document is rejected with 409 and leaves the stored copy alone.

Author: CS-1
"""

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request

from api.schemas import DeleteResponse, DocumentListResponse
from biostore.persistence import PersistenceAdapter

logger = logging.getLogger(__name__)


def get_documents(request: Request) -> PersistenceAdapter:
    return request.app.state.documents


def list_documents(documents: PersistenceAdapter, namespace: str) -> DocumentListResponse:
    items = documents.items(namespace)
    return DocumentListResponse(documents=items, total=len(items))


def read_document(
    documents: PersistenceAdapter, namespace: str, identity_id: str
) -> Dict[str, Any]:
    """
    Raises:
        404: If the collection holds no document for the identity.
    """
    document = documents.get(namespace, identity_id)
    if document is None:
        raise HTTPException(
            status_code=404, detail=f"{namespace}/{identity_id} not found"
        )
    return document


def write_document(
    documents: PersistenceAdapter,
    namespace: str,
    identity_id: str,
    document: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Store a document unless the stored copy is strictly newer.

    Raises:
        400: If the path and body identity_id differ.
        409: If the stored document has a later updated_at.
    """
    if document["identity_id"] != identity_id:
        raise HTTPException(
            status_code=400,
            detail=f"Body identity_id {document['identity_id']!r} does not match path {identity_id!r}",
        )

    stored = documents.get(namespace, identity_id)
    if stored is not None and document["updated_at"] < stored.get("updated_at", 0):
        logger.info(
            f"Rejected stale write to {namespace}/{identity_id} "
            f"({document['updated_at']} < {stored['updated_at']})"
        )
        raise HTTPException(
            status_code=409,
            detail=f"{namespace}/{identity_id} has a newer version ({stored['updated_at']})",
        )

    documents.set(namespace, identity_id, document)
    logger.info(f"Stored {namespace}/{identity_id} (updated_at {document['updated_at']})")
    return document


def delete_document(
    documents: PersistenceAdapter, namespace: str, identity_id: str
) -> DeleteResponse:
    """
    Raises:
        404: If the collection holds no document for the identity.
    """
    if documents.get(namespace, identity_id) is None:
        raise HTTPException(
            status_code=404, detail=f"{namespace}/{identity_id} not found"
        )

    documents.remove(namespace, identity_id)
    logger.info(f"Deleted {namespace}/{identity_id}")
    return DeleteResponse(
        success=True,
        identity_id=identity_id,
        message=f"{namespace}/{identity_id} deleted successfully",
    )
