"""
API Layer for the Biometric Identity Store

This package provides the FastAPI-based remote document store that the
biostore RemoteSyncAdapter replicates to:
- REST endpoints for the embeddings and registry collections
- Server-side last-write-wins on updated_at (409 for stale writes)
- Health check endpoint

Author: CS-1
"""
