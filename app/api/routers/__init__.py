"""
app/api/routers package marker.
"""

from app.api.routers.containers import router as containers_router
from app.api.routers.indexer import router as indexer_router
from app.api.routers.scans import router as scans_router
from app.api.routers.shipments import router as shipments_router

__all__ = [
    "containers_router",
    "indexer_router",
    "scans_router",
    "shipments_router",
]
