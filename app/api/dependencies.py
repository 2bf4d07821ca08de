"""
app/api/dependencies.py

Shared FastAPI dependencies.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from app.services.indexer_engine import ShipmentIndexer


def get_indexer(request: Request) -> ShipmentIndexer:
    """
    Return the indexer instance owned by the running application.
    """

    indexer = getattr(request.app.state, "indexer", None)
    if indexer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Indexer is disabled or not initialised.",
        )
    return indexer
