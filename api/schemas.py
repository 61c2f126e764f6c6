"""
Pydantic Schemas for the Remote Store API

This module defines the documents exchanged between the biometric store's
RemoteSyncAdapter and the remote document store. The field names match the
dicts produced by Embedding.to_dict() and RegistryRecord.to_dict().

These schemas provide:
- Type validation (descriptor length, integer timestamps)
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts

Author: CS-1
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from biostore.models import DESCRIPTOR_LENGTH


# ============================================================
# Document Schemas
# ============================================================

class EmbeddingDocument(BaseModel):
    """Face descriptor stored for one identity."""
    identity_id: str = Field(..., min_length=1, description="Unique identity key")
    descriptor: List[float] = Field(
        ...,
        min_length=DESCRIPTOR_LENGTH,
        max_length=DESCRIPTOR_LENGTH,
        description=f"{DESCRIPTOR_LENGTH}-value face descriptor"
    )
    updated_at: int = Field(..., ge=0, description="Freshness timestamp (ms since epoch)")


class RegistryDocument(BaseModel):
    """Account metadata and enrollment flag for one identity."""
    identity_id: str = Field(..., min_length=1, description="Unique identity key")
    email: Optional[str] = Field(None, description="Account email")
    display_name: Optional[str] = Field(None, description="Account display name")
    photo_url: Optional[str] = Field(None, description="Account photo URL")
    enrolled: bool = Field(False, description="Whether an embedding is stored")
    updated_at: int = Field(..., ge=0, description="Freshness timestamp (ms since epoch)")


# ============================================================
# Response Schemas
# ============================================================

class DocumentListResponse(BaseModel):
    """Every document of a collection, keyed by identity_id."""
    documents: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    total: int = Field(0, description="Number of documents")


class DeleteResponse(BaseModel):
    """Response from a document deletion."""
    success: bool = Field(..., description="Whether a document was removed")
    identity_id: str = Field(..., description="Identity of the deleted document")
    message: str = Field(..., description="Status message")


class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="'healthy', or 'degraded' when storage fell back to memory")
    storage_backend: str = Field(..., description="'durable' or 'memory'")
    embeddings: int = Field(..., description="Number of stored embeddings")
    registry_records: int = Field(..., description="Number of registry records")
