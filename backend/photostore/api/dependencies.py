"""
Route dependencies.
"""
from fastapi import Request

from photostore.storage.backend import StorageBackend


def get_storage_backend(request: Request) -> StorageBackend:
    """
    Storage backend created at startup.
    Usage: backend: StorageBackend = Depends(get_storage_backend)
    """
    return request.app.state.storage
