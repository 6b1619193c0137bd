"""
Value types returned by the storage client.

These are read projections of the store's own bookkeeping and carry no
ownership semantics.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


def strip_etag(etag: Optional[str]) -> str:
    """S3 returns ETags wrapped in double quotes; we keep them bare."""
    return (etag or "").strip('"')


def quote_etag(etag: str) -> str:
    """Re-add the quotes CompleteMultipartUpload expects."""
    return etag if etag.startswith('"') else f'"{etag}"'


@dataclass(frozen=True)
class StorageObject:
    """One object as seen in a listing or head request."""
    key: str
    size: int
    last_modified: datetime
    etag: str


@dataclass(frozen=True)
class UploadResult:
    """Result of a single-shot put."""
    etag: str
    version_id: Optional[str] = None


@dataclass(frozen=True)
class StoredPart:
    """A part the store has recorded for an in-progress multipart upload."""
    part_number: int
    etag: str
    size: int
    last_modified: Optional[datetime] = None
