"""
Presigned URL endpoint for single-object direct transfer.

The caller states the capability it needs ('read' or 'write'); a grant is
never broader than that. Part-scoped grants are issued under
/uploads/{id}/parts/{n}/presign since they need an open session.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from photostore.api.dependencies import get_storage_backend
from photostore.api.uploads import grant_response
from photostore.schemas.upload import PresignRequest, PresignResponse
from photostore.storage.backend import StorageBackend
from photostore.storage.presign import GrantCapability

router = APIRouter()


@router.post("", response_model=PresignResponse)
async def presign_object(
    request: PresignRequest,
    backend: StorageBackend = Depends(get_storage_backend)
):
    """
    Generate a presigned GET or PUT URL for one object.

    The URL is signed against the internal endpoint and rewritten to the
    public base when one is configured.
    """
    if request.capability is GrantCapability.WRITE_PART:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Part grants are issued per upload session: POST /uploads/{id}/parts/{n}/presign"
        )

    if request.capability is GrantCapability.WRITE:
        grant = backend.issue_presigned_put(request.key, request.ttl, request.content_type)
    else:
        grant = backend.issue_presigned_get(request.key, request.ttl)

    return grant_response(grant)
