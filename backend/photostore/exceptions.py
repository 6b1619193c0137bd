"""Exception hierarchy for the photo storage core."""

from __future__ import annotations

from typing import Any, Iterable, Optional


class PhotostoreError(Exception):
    """Base exception for all photostore errors.

    ``details`` carries the operation context (key, session_id,
    part_number, bucket) so callers and logs see what failed.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidExpiry(PhotostoreError):
    """Raised when a presign TTL is not positive or exceeds the protocol ceiling."""
    pass


class StorageError(PhotostoreError):
    """Raised when a storage operation fails."""
    pass


class StorageUnavailable(StorageError):
    """Raised on connectivity or transport failure. Retryable by the caller."""
    pass


class ObjectNotFound(StorageError):
    """Raised when reading a key that does not exist."""
    pass


class PermissionDenied(StorageError):
    """Raised when the store rejects the credentials. Not retryable."""
    pass


class BucketProvisioningFailed(StorageError):
    """Raised when the bucket cannot be verified or created at startup."""
    pass


class UploadError(PhotostoreError):
    """Base class for multipart session errors."""
    pass


class SessionNotFound(UploadError):
    """Raised when a session id is unknown to the coordinator."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Upload session not found: {session_id}",
            {"session_id": session_id},
        )
        self.session_id = session_id


class PartUploadFailed(UploadError):
    """Raised when a part could not be stored. Retryable per part.

    ``part_number`` is None when the store rejected the part manifest
    as a whole during completion.
    """

    def __init__(
        self,
        part_number: Optional[int],
        cause: Any,
        details: dict[str, Any] | None = None,
    ) -> None:
        label = f"part {part_number}" if part_number is not None else "part manifest"
        super().__init__(f"Upload of {label} failed: {cause}", details)
        self.details.setdefault("part_number", part_number)
        self.part_number = part_number
        self.cause = cause


class IncompletePartSequence(UploadError):
    """Raised when completion is requested with gaps in the part numbers."""

    def __init__(self, missing: Iterable[int], details: dict[str, Any] | None = None) -> None:
        self.missing = sorted(missing)
        if self.missing:
            message = f"Part sequence is not contiguous, missing parts: {self.missing}"
        else:
            message = "No parts uploaded"
        super().__init__(message, details)
        self.details.setdefault("missing", self.missing)
