"""
Health check endpoint.
Verifies the object store is reachable and the bucket exists.
"""
from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from photostore.api.dependencies import get_storage_backend
from photostore.exceptions import StorageError
from photostore.storage.backend import StorageBackend

router = APIRouter()


@router.get("")
async def health_check(backend: StorageBackend = Depends(get_storage_backend)):
    """
    Health check endpoint.
    Returns status of the storage connection.
    """
    health_status = {
        "status": "healthy",
        "bucket": backend.storage.bucket,
        "storage": "unknown"
    }

    try:
        exists = await run_in_threadpool(backend.storage.bucket_exists)
        health_status["storage"] = "connected" if exists else "bucket missing"
        if not exists:
            health_status["status"] = "unhealthy"
    except StorageError as e:
        health_status["storage"] = f"error: {e.message}"
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status
