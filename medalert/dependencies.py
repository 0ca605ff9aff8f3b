"""
Request dependencies handing out the objects owned by the application lifespan.
"""
from fastapi import Request

from .status.cache import MedicationStatusCache
from .status.engine import StatusEngine
from .storage.store import ValidatingRetryingStore


def get_store(request: Request) -> ValidatingRetryingStore:
    """
    Store dependency - The store created at startup.

    Returns:
        ValidatingRetryingStore: Shared store instance
    """
    return request.app.state.store


def get_engine(request: Request) -> StatusEngine:
    return request.app.state.engine


def get_status_cache(request: Request) -> MedicationStatusCache:
    return request.app.state.status_cache
