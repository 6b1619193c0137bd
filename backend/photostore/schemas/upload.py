"""
Pydantic schemas for upload and presign endpoints.
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from photostore.storage.multipart import SessionState
from photostore.storage.presign import GrantCapability


class UploadInitRequest(BaseModel):
    """Request schema for starting a multipart upload."""
    key: str = Field(..., min_length=1, description="Object key to assemble the upload under")
    content_type: Optional[str] = Field(None, description="MIME type stored on the final object")

    model_config = {
        "json_schema_extra": {
            "example": {"key": "raw/album-1/IMG_0001.jpg", "content_type": "image/jpeg"}
        }
    }


class UploadInitResponse(BaseModel):
    """Response schema for a new upload session."""
    session_id: str
    object_key: str
    upload_id: str


class PartResponse(BaseModel):
    """A stored part."""
    part_number: int
    etag: str
    size_bytes: int


class UploadSessionResponse(BaseModel):
    """Current view of a session."""
    session_id: str
    object_key: str
    state: SessionState
    created_at: datetime
    parts: List[PartResponse] = []


class UploadCompleteResponse(BaseModel):
    """
    Result of a complete call.

    completed=False means the session was already aborted and nothing was done.
    """
    session_id: str
    completed: bool
    object_key: Optional[str] = None
    etag: Optional[str] = None
    size_bytes: Optional[int] = None
    part_count: Optional[int] = None
    verified: Optional[bool] = None


class UploadResumeRequest(BaseModel):
    """Re-attach to an upload started elsewhere."""
    key: str = Field(..., min_length=1)
    upload_id: str = Field(..., min_length=1)


class PresignRequest(BaseModel):
    """Request schema for a single-object presigned URL."""
    key: str = Field(..., min_length=1, description="Object key")
    capability: GrantCapability = Field(..., description="'read' (GET) or 'write' (PUT)")
    ttl: Optional[int] = Field(None, description="Expiry in seconds (default from settings)")
    content_type: Optional[str] = Field(None, description="Content-Type to sign into write grants")

    model_config = {
        "json_schema_extra": {
            "example": {"key": "raw/album-1/IMG_0001.jpg", "capability": "write", "ttl": 600}
        }
    }


class PartPresignRequest(BaseModel):
    """Request schema for a presigned part URL."""
    ttl: Optional[int] = Field(None, description="Expiry in seconds (default from settings)")


class PresignResponse(BaseModel):
    """A presigned grant as handed to clients."""
    url: str = Field(..., description="Presigned URL, already translated to the public endpoint")
    method: str
    object_key: str
    capability: GrantCapability
    expires_at: datetime
    expires_in: int
    part_number: Optional[int] = None
