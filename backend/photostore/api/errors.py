"""
FastAPI exception handlers for the photostore error taxonomy.
"""
import logging
from typing import Any, Dict

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from photostore.exceptions import (
    BucketProvisioningFailed,
    IncompletePartSequence,
    InvalidExpiry,
    ObjectNotFound,
    PartUploadFailed,
    PermissionDenied,
    PhotostoreError,
    SessionNotFound,
    StorageUnavailable,
)

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES = [
    (SessionNotFound, status.HTTP_404_NOT_FOUND),
    (ObjectNotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (IncompletePartSequence, status.HTTP_409_CONFLICT),
    (InvalidExpiry, status.HTTP_400_BAD_REQUEST),
    (PartUploadFailed, status.HTTP_502_BAD_GATEWAY),
    (StorageUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (BucketProvisioningFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _status_for(exc: PhotostoreError) -> int:
    for exc_type, code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_502_BAD_GATEWAY


def _safe_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Details may hold arbitrary objects; keep the JSON body serialisable."""
    plain = (str, int, float, bool, list, type(None))
    return {key: value if isinstance(value, plain) else str(value) for key, value in details.items()}


async def photostore_exception_handler(request: Request, exc: PhotostoreError) -> JSONResponse:
    """Translate a photostore error into a JSON error response."""
    status_code = _status_for(exc)
    details = _safe_details(exc.details)

    log = logger.error if status_code >= 500 else logger.info
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={"event": "request_failed", "error_type": type(exc).__name__, "path": request.url.path}
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": details,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PhotostoreError, photostore_exception_handler)
