"""
Storage module for S3-compatible object storage (MinIO / S3 / R2).

Handles server-mediated multipart uploads and presigned URLs for
direct client-to-storage transfer.
"""
from photostore.storage.backend import StorageBackend
from photostore.storage.client import StorageClient
from photostore.storage.multipart import MultipartCoordinator, SessionState
from photostore.storage.presign import GrantCapability, PresignedGrant, PresignIssuer

__all__ = [
    "StorageBackend",
    "StorageClient",
    "MultipartCoordinator",
    "SessionState",
    "GrantCapability",
    "PresignedGrant",
    "PresignIssuer",
]
