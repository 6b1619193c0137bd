"""
Presigned URL generation.

Issues time-limited URLs that let a client talk to storage directly
without holding long-lived credentials:
- read: GET one object
- write: PUT one object
- write_part: PUT one part of one multipart upload (bound to the
  upload id and part number, unusable for any other part)

The capability is always an explicit argument so a caller cannot end up
with a broader grant than it asked for. Signing is local, there is no
network I/O. Every URL is passed through the endpoint translator before
it is handed out.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs, urlsplit

from photostore.exceptions import InvalidExpiry
from photostore.storage.client import StorageClient
from photostore.storage.endpoints import to_public_url
from photostore.utils.metrics import presigned_grants_total

logger = logging.getLogger(__name__)

# SigV4 presigned URLs cannot outlive 7 days
MAX_PRESIGN_TTL = 7 * 24 * 60 * 60

AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"


class GrantCapability(str, enum.Enum):
    """What a presigned URL allows."""
    READ = "read"
    WRITE = "write"
    WRITE_PART = "write_part"


# capability -> (boto3 client method, HTTP method)
_CAPABILITY_METHODS = {
    GrantCapability.READ: ("get_object", "GET"),
    GrantCapability.WRITE: ("put_object", "PUT"),
    GrantCapability.WRITE_PART: ("upload_part", "PUT"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PresignedGrant:
    """A signed URL and what it is good for. Never persisted."""
    url: str
    method: str
    expires_at: datetime
    object_key: str
    capability: GrantCapability
    part_number: Optional[int] = None

    def is_valid_at(self, moment: datetime) -> bool:
        """True while the signature has not expired."""
        return moment < self.expires_at

    def expires_in(self, now: Optional[datetime] = None) -> int:
        """Seconds left until expiry, never negative."""
        remaining = (self.expires_at - (now or _utcnow())).total_seconds()
        return max(0, int(remaining))


def validate_ttl(ttl: int) -> int:
    """Reject TTLs that are not in 1..MAX_PRESIGN_TTL seconds."""
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise InvalidExpiry(f"TTL must be an integer number of seconds, got {ttl!r}", {"ttl": ttl})
    if ttl <= 0:
        raise InvalidExpiry(f"TTL must be positive, got {ttl}", {"ttl": ttl})
    if ttl > MAX_PRESIGN_TTL:
        raise InvalidExpiry(
            f"TTL {ttl}s exceeds the maximum of {MAX_PRESIGN_TTL}s",
            {"ttl": ttl, "max_ttl": MAX_PRESIGN_TTL}
        )
    return ttl


def _signed_expiry(url: str, ttl: int, fallback: datetime) -> datetime:
    """
    Expiry as encoded in the signature itself.

    SigV4 URLs carry X-Amz-Date (signing time) and X-Amz-Expires; using
    them keeps expires_at exact rather than approximated from our clock.
    """
    query = parse_qs(urlsplit(url).query)
    amz_date = query.get("X-Amz-Date", [None])[0]
    if amz_date:
        signed_at = datetime.strptime(amz_date, AMZ_DATE_FORMAT).replace(tzinfo=timezone.utc)
    else:
        signed_at = fallback
    return signed_at + timedelta(seconds=ttl)


class PresignIssuer:
    """
    Issues presigned grants for one storage backend.

    Args:
        storage: Client binding holding the credentials to sign with
        public_url: Optional public base for endpoint translation
        default_ttl: TTL used when the caller does not pass one
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        storage: StorageClient,
        public_url: Optional[str] = None,
        default_ttl: int = 3600,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.public_url = public_url
        self.default_ttl = validate_ttl(default_ttl)
        self._clock = clock

    def issue(
        self,
        key: str,
        capability: GrantCapability,
        ttl: Optional[int] = None,
        upload_id: Optional[str] = None,
        part_number: Optional[int] = None,
        content_type: Optional[str] = None
    ) -> PresignedGrant:
        """
        Issue a grant for exactly one capability on one key.

        Raises:
            InvalidExpiry: ttl outside 1..MAX_PRESIGN_TTL
            ValueError: part arguments missing for write_part, or given for anything else
        """
        if not key:
            raise ValueError("Object key is required")
        capability = GrantCapability(capability)
        ttl = validate_ttl(self.default_ttl if ttl is None else ttl)

        params: Dict[str, Any] = {"Key": key}
        if capability is GrantCapability.WRITE_PART:
            if not upload_id or part_number is None:
                raise ValueError("write_part grants need an upload id and a part number")
            params["UploadId"] = upload_id
            params["PartNumber"] = part_number
        elif upload_id is not None or part_number is not None:
            raise ValueError(f"{capability.value} grants cannot be scoped to a part")

        if content_type and capability is GrantCapability.WRITE:
            params["ContentType"] = content_type

        client_method, http_method = _CAPABILITY_METHODS[capability]
        issued_at = self._clock()
        signed = self.storage.generate_presigned_url(client_method, params, ttl)
        expires_at = _signed_expiry(signed, ttl, issued_at)

        presigned_grants_total.labels(capability=capability.value).inc()
        logger.debug(
            f"Issued {capability.value} grant for {key} (expires in {ttl}s)",
            extra={"event": "grant_issued", "object_key": key, "part_number": part_number}
        )

        return PresignedGrant(
            url=to_public_url(signed, self.public_url, self.storage.bucket),
            method=http_method,
            expires_at=expires_at,
            object_key=key,
            capability=capability,
            part_number=part_number,
        )

    def issue_upload_url(
        self,
        key: str,
        ttl: Optional[int] = None,
        content_type: Optional[str] = None
    ) -> PresignedGrant:
        return self.issue(key, GrantCapability.WRITE, ttl, content_type=content_type)

    def issue_download_url(self, key: str, ttl: Optional[int] = None) -> PresignedGrant:
        return self.issue(key, GrantCapability.READ, ttl)

    def issue_part_url(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        ttl: Optional[int] = None
    ) -> PresignedGrant:
        return self.issue(
            key,
            GrantCapability.WRITE_PART,
            ttl,
            upload_id=upload_id,
            part_number=part_number,
        )
