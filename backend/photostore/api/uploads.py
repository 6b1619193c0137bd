"""
Multipart upload endpoints.

Server-mediated flow:
1. POST   /uploads                          - start a session
2. PUT    /uploads/{id}/parts/{n}           - send part n (raw body)
3. POST   /uploads/{id}/complete            - assemble the object
   DELETE /uploads/{id}                     - abort (idempotent)

Client-direct flow replaces step 2 with
   POST   /uploads/{id}/parts/{n}/presign   - presigned PUT for part n
and completes with ?sync=true so part ETags are read back from storage.

Storage calls are blocking (boto3) and run in the threadpool.
Parts may be sent concurrently for different part numbers.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Path, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from photostore.api.dependencies import get_storage_backend
from photostore.schemas.upload import (
    PartPresignRequest,
    PartResponse,
    PresignResponse,
    UploadCompleteResponse,
    UploadInitRequest,
    UploadInitResponse,
    UploadResumeRequest,
    UploadSessionResponse,
)
from photostore.storage.backend import StorageBackend
from photostore.storage.multipart import MAX_PART_NUMBER, MIN_PART_NUMBER, UploadSession
from photostore.storage.presign import PresignedGrant

router = APIRouter()

def _session_response(session: UploadSession) -> UploadSessionResponse:
    return UploadSessionResponse(
        session_id=session.session_id,
        object_key=session.object_key,
        state=session.state,
        created_at=session.created_at,
        parts=[
            PartResponse(part_number=p.part_number, etag=p.etag, size_bytes=p.size_bytes)
            for p in session.ordered_parts()
        ],
    )


def grant_response(grant: PresignedGrant) -> PresignResponse:
    return PresignResponse(
        url=grant.url,
        method=grant.method,
        object_key=grant.object_key,
        capability=grant.capability,
        expires_at=grant.expires_at,
        expires_in=grant.expires_in(),
        part_number=grant.part_number,
    )


@router.post("", response_model=UploadInitResponse, status_code=status.HTTP_201_CREATED)
async def init_upload(
    request: UploadInitRequest,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """Start a multipart upload session."""
    session_id = await run_in_threadpool(backend.init_upload, request.key, request.content_type)
    session = backend.coordinator.get_session(session_id)

    return UploadInitResponse(
        session_id=session_id,
        object_key=session.object_key,
        upload_id=session.upload_id,
    )


@router.post("/resume", response_model=UploadInitResponse, status_code=status.HTTP_201_CREATED)
async def resume_upload(
    request: UploadResumeRequest,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """
    Attach a new session to an upload that already exists on storage.
    Parts stored so far are picked up from the store.
    """
    session_id = await run_in_threadpool(backend.resume_upload, request.key, request.upload_id)

    return UploadInitResponse(
        session_id=session_id,
        object_key=request.key,
        upload_id=request.upload_id,
    )


@router.get("/{session_id}", response_model=UploadSessionResponse)
async def get_upload(
    session_id: str,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """Current state and recorded parts of a session."""
    return _session_response(backend.coordinator.get_session(session_id))


@router.put("/{session_id}/parts/{part_number}", response_model=PartResponse)
async def upload_part(
    request: Request,
    session_id: str,
    part_number: int = Path(..., ge=MIN_PART_NUMBER, le=MAX_PART_NUMBER),
    backend: StorageBackend = Depends(get_storage_backend)
):
    """
    Upload the raw request body as part `part_number`.

    Re-sending the same part number overwrites it. A 502 means the part
    did not reach storage and may be retried.
    """
    data = await request.body()
    record = await run_in_threadpool(
        backend.coordinator.upload_part, session_id, part_number, data
    )

    return PartResponse(
        part_number=record.part_number,
        etag=record.etag,
        size_bytes=record.size_bytes,
    )


@router.post("/{session_id}/parts/{part_number}/presign", response_model=PresignResponse)
async def presign_part(
    session_id: str,
    part_number: int = Path(..., ge=MIN_PART_NUMBER, le=MAX_PART_NUMBER),
    request: Optional[PartPresignRequest] = None,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """Presigned PUT URL valid for this part of this upload only."""
    ttl = request.ttl if request else None
    grant = backend.issue_presigned_part(session_id, part_number, ttl)
    return grant_response(grant)


@router.post("/{session_id}/complete", response_model=UploadCompleteResponse)
async def complete_upload(
    session_id: str,
    sync: bool = False,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """
    Assemble the parts into the final object.

    Returns completed=false (not an error) if the session was aborted.
    409 if the part numbers are not a contiguous 1..N run.
    """
    result = await run_in_threadpool(backend.complete_upload, session_id, sync)

    if result is None:
        return UploadCompleteResponse(session_id=session_id, completed=False)

    return UploadCompleteResponse(
        session_id=session_id,
        completed=True,
        object_key=result.object_key,
        etag=result.etag,
        size_bytes=result.size_bytes,
        part_count=result.part_count,
        verified=result.verified,
    )


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def abort_upload(
    session_id: str,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """Abort the upload. Safe to call more than once."""
    await run_in_threadpool(backend.abort_upload, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
