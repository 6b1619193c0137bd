"""
One configured storage backend.

Bundles the client binding, presign issuer and multipart coordinator for
a single bucket and exposes the operations the application tier calls.
Instances are constructed explicitly and passed around; a process may
hold several (e.g. per-tenant buckets).
"""
import logging
from typing import Optional

from photostore.config import Settings, StorageConfig
from photostore.exceptions import PartUploadFailed
from photostore.storage.buckets import ensure_bucket
from photostore.storage.client import StorageClient
from photostore.storage.multipart import CompletedUpload, MultipartCoordinator
from photostore.storage.presign import GrantCapability, PresignedGrant, PresignIssuer

logger = logging.getLogger(__name__)


class StorageBackend:
    """Entry point for the application tier."""

    def __init__(self, config: StorageConfig, storage: Optional[StorageClient] = None, **coordinator_options):
        self.config = config
        self.storage = storage or StorageClient(config)
        self.issuer = PresignIssuer(
            self.storage,
            public_url=config.public_url,
            default_ttl=config.presign_expiration,
        )
        self.coordinator = MultipartCoordinator(
            self.storage,
            verify_delay=config.verify_delay,
            retention=config.session_retention,
            idle_timeout=config.session_idle_timeout,
            **coordinator_options
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageBackend":
        return cls(StorageConfig.from_settings(settings))

    def ensure_bucket(self) -> bool:
        return ensure_bucket(self.storage, self.config.region)

    # Server-mediated uploads

    def init_upload(self, key: str, content_type: Optional[str] = None) -> str:
        return self.coordinator.init(key, content_type=content_type)

    def upload_part(self, session_id: str, part_number: int, data: bytes) -> str:
        return self.coordinator.upload_part(session_id, part_number, data).etag

    def complete_upload(self, session_id: str, sync: bool = False) -> Optional[CompletedUpload]:
        """
        Args:
            sync: refresh part records from the store first (client-direct uploads)
        """
        if sync:
            self.coordinator.sync_parts(session_id)
        return self.coordinator.complete(session_id)

    def abort_upload(self, session_id: str) -> None:
        self.coordinator.abort(session_id)

    def resume_upload(self, key: str, upload_id: str) -> str:
        return self.coordinator.resume(key, upload_id)

    # Client-direct uploads

    def issue_presigned_put(
        self,
        key: str,
        ttl: Optional[int] = None,
        content_type: Optional[str] = None
    ) -> PresignedGrant:
        return self.issuer.issue(key, GrantCapability.WRITE, ttl, content_type=content_type)

    def issue_presigned_get(self, key: str, ttl: Optional[int] = None) -> PresignedGrant:
        return self.issuer.issue(key, GrantCapability.READ, ttl)

    def issue_presigned_part(self, session_id: str, part_number: int, ttl: Optional[int] = None) -> PresignedGrant:
        """Part URL for an open session; the client PUTs the bytes itself."""
        session = self.coordinator.get_session(session_id)
        if not session.state.accepts_parts:
            raise PartUploadFailed(
                part_number,
                f"session is {session.state.value}",
                session.context(part_number=part_number),
            )
        return self.issuer.issue_part_url(session.object_key, session.upload_id, part_number, ttl)

    def close(self) -> None:
        self.storage.close()
