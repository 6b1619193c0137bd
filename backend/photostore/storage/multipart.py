"""
Multipart upload coordination.

Owns the lifecycle of multipart upload sessions:

    Created -> Uploading -> Completing -> Completed
    (Created | Uploading) -> Aborting -> Aborted

Flow:
1. init() creates the upload on the store and registers a session
2. upload_part() stores numbered parts (any order, in parallel for
   different numbers; re-uploading a number overwrites it)
3. complete() checks the parts form 1..N, sends the ascending manifest
   and does one delayed existence check
4. abort() releases the upload; repeating it is a logged no-op

The store is the source of truth. There is no cross-session locking and
no per-part locking: concurrent uploads of the same part number are
last-writer-wins. No retries happen here, a failed part surfaces as
PartUploadFailed and the caller decides whether to retry it.
"""
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from photostore.exceptions import (
    IncompletePartSequence,
    ObjectNotFound,
    PartUploadFailed,
    SessionNotFound,
    StorageError,
    StorageUnavailable,
)
from photostore.storage.client import StorageClient
from photostore.utils.logging import (
    log_part_uploaded,
    log_storage_failure,
    log_upload_aborted,
    log_upload_completed,
    log_upload_initiated,
)
from photostore.utils.metrics import multipart_parts_bytes_total, multipart_sessions_total

logger = logging.getLogger(__name__)

MIN_PART_NUMBER = 1
MAX_PART_NUMBER = 10000

# Store rejections of the part manifest itself (missing/stale/undersized parts)
MANIFEST_ERROR_CODES = {"InvalidPart", "InvalidPartOrder", "EntityTooSmall"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, enum.Enum):
    """Lifecycle state of an upload session."""
    CREATED = "created"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)

    @property
    def accepts_parts(self) -> bool:
        return self in (SessionState.CREATED, SessionState.UPLOADING)


@dataclass(frozen=True)
class PartRecord:
    """A part the store has acknowledged."""
    part_number: int
    etag: str
    size_bytes: int
    uploaded_at: datetime


@dataclass(frozen=True)
class CompletedUpload:
    """Outcome of a successful complete()."""
    session_id: str
    object_key: str
    etag: str
    part_count: int
    size_bytes: int
    verified: bool


@dataclass
class UploadSession:
    """
    One multipart upload.

    Attributes:
        session_id: Identifier handed to callers
        object_key: Key the object will be assembled under
        bucket: Bucket of the owning storage backend
        upload_id: Store-side multipart upload id
        created_at: When the session was registered
        parts: Part records keyed by part number
        state: Current lifecycle state
        result: Set once completed
        last_active_at: Last time a part was recorded (or created_at)
        finished_at: When the session reached a terminal state
    """
    session_id: str
    object_key: str
    bucket: str
    upload_id: str
    created_at: datetime
    parts: Dict[int, PartRecord] = field(default_factory=dict)
    state: SessionState = SessionState.CREATED
    result: Optional[CompletedUpload] = None
    last_active_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def ordered_parts(self) -> List[PartRecord]:
        return [self.parts[number] for number in sorted(self.parts)]

    def missing_parts(self) -> List[int]:
        """Part numbers absent from 1..max(uploaded)."""
        if not self.parts:
            return []
        highest = max(self.parts)
        return [n for n in range(MIN_PART_NUMBER, highest + 1) if n not in self.parts]

    @property
    def size_bytes(self) -> int:
        return sum(part.size_bytes for part in self.parts.values())

    def context(self, **extra) -> dict:
        """Operation context for errors."""
        return {
            "session_id": self.session_id,
            "key": self.object_key,
            "bucket": self.bucket,
            **extra,
        }


class MultipartCoordinator:
    """
    Coordinates multipart uploads against one storage backend.

    Args:
        storage: Storage client binding to upload through
        verify_delay: Seconds to wait before the post-complete existence check
        retention: Seconds a completed/aborted session is kept so repeated
            complete/abort calls stay no-ops
        idle_timeout: Seconds without a new part before an open session is
            dropped locally (the store-side upload is left for resume())
        sleep: Sleep function (injectable for tests)
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        storage: StorageClient,
        verify_delay: float = 1.0,
        retention: float = 3600.0,
        idle_timeout: float = 86400.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.storage = storage
        self.verify_delay = verify_delay
        self.retention = retention
        self.idle_timeout = idle_timeout
        self._sleep = sleep
        self._clock = clock
        self._sessions: Dict[str, UploadSession] = {}

    def get_session(self, session_id: str) -> UploadSession:
        self._purge_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def _purge_expired(self) -> None:
        """Drop finished sessions past retention and open sessions gone idle."""
        now = self._clock()
        expired = []
        for session_id, session in list(self._sessions.items()):
            if session.finished_at is not None:
                if (now - session.finished_at).total_seconds() >= self.retention:
                    expired.append(session_id)
            elif session.state.accepts_parts:
                last_active = session.last_active_at or session.created_at
                if (now - last_active).total_seconds() >= self.idle_timeout:
                    logger.info(
                        f"Dropping idle upload session {session_id}",
                        extra={
                            "event": "session_expired",
                            "session_id": session_id,
                            "upload_id": session.upload_id,
                        }
                    )
                    expired.append(session_id)

        for session_id in expired:
            self._sessions.pop(session_id, None)

    def _finish(self, session: UploadSession, state: SessionState) -> None:
        """Move to a terminal state; part records are no longer needed."""
        session.state = state
        session.finished_at = self._clock()
        session.parts = {}

    def init(self, key: str, content_type: Optional[str] = None) -> str:
        """
        Start a multipart upload for key.

        Returns:
            session_id; no session is registered if the store call fails
        """
        if not key:
            raise ValueError("Object key is required")

        self._purge_expired()
        start = time.monotonic()
        upload_id = self.storage.init_multipart(key, content_type=content_type)

        session = UploadSession(
            session_id=uuid.uuid4().hex,
            object_key=key,
            bucket=self.storage.bucket,
            upload_id=upload_id,
            created_at=self._clock(),
        )
        self._sessions[session.session_id] = session

        multipart_sessions_total.labels(event="started").inc()
        log_upload_initiated(
            logger,
            session_id=session.session_id,
            object_key=key,
            duration_ms=(time.monotonic() - start) * 1000,
            upload_id=upload_id,
        )
        return session.session_id

    def resume(self, key: str, upload_id: str) -> str:
        """
        Rebuild a session from the store's record of an in-progress upload.

        Lets another process pick up an upload it did not start.

        Raises:
            SessionNotFound: the store has no such upload
        """
        try:
            stored = self.storage.list_parts(key, upload_id)
        except ObjectNotFound as e:
            raise SessionNotFound(upload_id) from e

        session = UploadSession(
            session_id=uuid.uuid4().hex,
            object_key=key,
            bucket=self.storage.bucket,
            upload_id=upload_id,
            created_at=self._clock(),
        )
        for part in stored:
            session.parts[part.part_number] = PartRecord(
                part_number=part.part_number,
                etag=part.etag,
                size_bytes=part.size,
                uploaded_at=part.last_modified or session.created_at,
            )
        if session.parts:
            session.state = SessionState.UPLOADING
        self._sessions[session.session_id] = session

        logger.info(
            f"Resumed upload {upload_id} for {key} with {len(stored)} parts",
            extra={"event": "upload_resumed", "session_id": session.session_id, "object_key": key}
        )
        return session.session_id

    def sync_parts(self, session_id: str) -> List[PartRecord]:
        """
        Replace the local part records with the store's listing.

        Needed when parts were PUT by clients through presigned part URLs
        and never passed through upload_part().
        """
        session = self.get_session(session_id)
        if not session.state.accepts_parts:
            return session.ordered_parts()

        stored = self.storage.list_parts(session.object_key, session.upload_id)
        session.parts = {
            part.part_number: PartRecord(
                part_number=part.part_number,
                etag=part.etag,
                size_bytes=part.size,
                uploaded_at=part.last_modified or self._clock(),
            )
            for part in stored
        }
        if session.parts:
            session.state = SessionState.UPLOADING
            session.last_active_at = self._clock()
        return session.ordered_parts()

    def upload_part(self, session_id: str, part_number: int, data: bytes) -> PartRecord:
        """
        Upload one part.

        Raises:
            SessionNotFound: unknown session_id
            ValueError: part_number outside 1..10000
            PartUploadFailed: the store rejected the part, or the session
                no longer accepts parts
        """
        session = self.get_session(session_id)
        if not MIN_PART_NUMBER <= part_number <= MAX_PART_NUMBER:
            raise ValueError(
                f"Part number must be between {MIN_PART_NUMBER} and {MAX_PART_NUMBER}, got {part_number}"
            )

        if not session.state.accepts_parts:
            raise PartUploadFailed(
                part_number,
                f"session is {session.state.value}",
                session.context(part_number=part_number),
            )
        session.state = SessionState.UPLOADING

        start = time.monotonic()
        try:
            etag = self.storage.upload_part(
                session.object_key, session.upload_id, part_number, data
            )
        except StorageError as e:
            log_storage_failure(
                logger,
                operation="upload_part",
                error=str(e),
                object_key=session.object_key,
                session_id=session_id,
                part_number=part_number,
                include_traceback=isinstance(e, StorageUnavailable),
            )
            raise PartUploadFailed(part_number, e, session.context()) from e

        # complete/abort may have started while this part was in flight
        if not session.state.accepts_parts:
            raise PartUploadFailed(
                part_number,
                f"session moved to {session.state.value} while the part was in flight",
                session.context(),
            )

        record = PartRecord(
            part_number=part_number,
            etag=etag,
            size_bytes=len(data),
            uploaded_at=self._clock(),
        )
        session.parts[part_number] = record
        session.last_active_at = record.uploaded_at

        multipart_parts_bytes_total.inc(len(data))
        log_part_uploaded(
            logger,
            session_id=session_id,
            part_number=part_number,
            size_bytes=len(data),
            duration_ms=(time.monotonic() - start) * 1000,
        )
        return record

    def complete(self, session_id: str) -> Optional[CompletedUpload]:
        """
        Assemble the uploaded parts into the final object.

        Completing an already completed session returns the earlier result.
        Completing an aborted session is a logged no-op returning None.

        Raises:
            SessionNotFound: unknown session_id
            IncompletePartSequence: no parts, or gaps in 1..N (nothing is sent)
            PartUploadFailed: the store rejected the part manifest
        """
        session = self.get_session(session_id)

        if session.state is SessionState.COMPLETED:
            logger.info(
                f"Upload {session_id} already completed",
                extra={"event": "complete_noop", "session_id": session_id}
            )
            return session.result
        if session.state in (SessionState.ABORTED, SessionState.ABORTING, SessionState.COMPLETING):
            logger.warning(
                f"Ignoring complete for upload {session_id} in state {session.state.value}",
                extra={"event": "complete_noop", "session_id": session_id, "state": session.state.value}
            )
            return None

        parts = session.ordered_parts()
        missing = session.missing_parts()
        if not parts or missing:
            raise IncompletePartSequence(missing, session.context(uploaded=sorted(session.parts)))

        session.state = SessionState.COMPLETING
        start = time.monotonic()
        try:
            etag = self.storage.complete_multipart(
                session.object_key,
                session.upload_id,
                [(part.part_number, part.etag) for part in parts],
            )
        except StorageError as e:
            # Still open on the store side; parts can be re-sent
            session.state = SessionState.UPLOADING
            log_storage_failure(
                logger,
                operation="complete_multipart",
                error=str(e),
                object_key=session.object_key,
                session_id=session_id,
                include_traceback=isinstance(e, StorageUnavailable),
            )
            if e.details.get("code") in MANIFEST_ERROR_CODES:
                raise PartUploadFailed(None, e, session.context()) from e
            e.details.setdefault("session_id", session_id)
            raise

        size_bytes = session.size_bytes
        self._finish(session, SessionState.COMPLETED)
        verified = self._verify_exists(session)

        session.result = CompletedUpload(
            session_id=session_id,
            object_key=session.object_key,
            etag=etag,
            part_count=len(parts),
            size_bytes=size_bytes,
            verified=verified,
        )

        multipart_sessions_total.labels(event="completed").inc()
        log_upload_completed(
            logger,
            session_id=session_id,
            object_key=session.object_key,
            part_count=len(parts),
            duration_ms=(time.monotonic() - start) * 1000,
            size_bytes=size_bytes,
            verified=verified,
        )
        return session.result

    def _verify_exists(self, session: UploadSession) -> bool:
        """
        One delayed existence check after completion.

        The store may lag behind its own CompleteMultipartUpload response.
        A miss is logged as an integrity warning and never raised: the
        store already acknowledged the completion.
        """
        if self.verify_delay > 0:
            self._sleep(self.verify_delay)

        try:
            found = self.storage.exists(session.object_key)
        except StorageError as e:
            logger.warning(
                f"Could not verify {session.object_key} after completion: {e}",
                extra={"event": "complete_verify_failed", "session_id": session.session_id}
            )
            return False

        if not found:
            logger.warning(
                f"Object {session.object_key} not visible after completing upload {session.session_id}",
                extra={
                    "event": "complete_verify_failed",
                    "session_id": session.session_id,
                    "object_key": session.object_key,
                }
            )
        return found

    def abort(self, session_id: str) -> None:
        """
        Abort the upload and release its parts on the store.

        Idempotent: aborting a completed or aborted session logs and returns.

        Raises:
            SessionNotFound: unknown session_id
        """
        session = self.get_session(session_id)

        if session.state.is_terminal or session.state in (SessionState.ABORTING, SessionState.COMPLETING):
            logger.info(
                f"Ignoring abort for upload {session_id} in state {session.state.value}",
                extra={"event": "abort_noop", "session_id": session_id, "state": session.state.value}
            )
            return

        previous = session.state
        session.state = SessionState.ABORTING
        try:
            self.storage.abort_multipart(session.object_key, session.upload_id)
        except ObjectNotFound:
            logger.info(
                f"Upload {session.upload_id} already gone from the store",
                extra={"event": "abort_noop", "session_id": session_id}
            )
        except StorageError as e:
            session.state = previous
            log_storage_failure(
                logger,
                operation="abort_multipart",
                error=str(e),
                object_key=session.object_key,
                session_id=session_id,
                include_traceback=isinstance(e, StorageUnavailable),
            )
            e.details.setdefault("session_id", session_id)
            raise

        part_count = len(session.parts)
        self._finish(session, SessionState.ABORTED)
        multipart_sessions_total.labels(event="aborted").inc()
        log_upload_aborted(
            logger,
            session_id=session_id,
            object_key=session.object_key,
            part_count=part_count,
        )
