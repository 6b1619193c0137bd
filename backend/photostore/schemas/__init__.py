"""
Pydantic schemas for API request/response validation.
"""
from photostore.schemas.upload import (
    UploadInitRequest,
    UploadInitResponse,
    PartResponse,
    UploadSessionResponse,
    UploadCompleteResponse,
    UploadResumeRequest,
    PresignRequest,
    PartPresignRequest,
    PresignResponse,
)

__all__ = [
    "UploadInitRequest",
    "UploadInitResponse",
    "PartResponse",
    "UploadSessionResponse",
    "UploadCompleteResponse",
    "UploadResumeRequest",
    "PresignRequest",
    "PartPresignRequest",
    "PresignResponse",
]
