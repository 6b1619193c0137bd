"""
S3-compatible storage client.

Uses boto3 against any S3-compatible endpoint (MinIO, R2, AWS S3).
Object, bucket and multipart primitives all go through one client with
path-style addressing so bucket names stay in the URL path.

This layer performs no retries: botocore retries are disabled and every
failure is translated into the photostore error taxonomy and raised.
Retry policy belongs to the caller so it can differ per operation.
"""
import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from photostore.config import StorageConfig
from photostore.exceptions import (
    ObjectNotFound,
    PermissionDenied,
    StorageError,
    StorageUnavailable,
)
from photostore.storage.types import (
    StorageObject,
    StoredPart,
    UploadResult,
    quote_etag,
    strip_etag,
)
from photostore.utils.metrics import (
    storage_operation_duration_seconds,
    storage_operations_total,
)

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket", "NoSuchUpload"}
DENIED_CODES = {
    "403",
    "AccessDenied",
    "Forbidden",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
}
UNAVAILABLE_CODES = {
    "500",
    "503",
    "InternalError",
    "RequestTimeout",
    "ServiceUnavailable",
    "SlowDown",
}

DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def create_s3_client(config: StorageConfig):
    """
    Build a boto3 S3 client for the given backend.

    Checksum calculation is limited to when the operation requires it;
    newer botocore adds x-amz-checksum-* headers by default and MinIO
    rejects some of them.
    """
    return boto3.client(
        's3',
        endpoint_url=config.endpoint_url,
        region_name=config.region,
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        config=Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
            retries={'max_attempts': 1, 'mode': 'standard'},
            connect_timeout=config.timeout,
            read_timeout=config.timeout,
            request_checksum_calculation='when_required',
            response_checksum_validation='when_required',
        )
    )


def translate_client_error(
    error: ClientError,
    operation: str,
    context: Dict[str, Any]
) -> StorageError:
    """Map a botocore ClientError onto the storage error taxonomy."""
    code = str(error.response.get("Error", {}).get("Code", ""))
    details = {**context, "operation": operation, "code": code}
    message = f"{operation} failed: {error}"

    if code in NOT_FOUND_CODES:
        return ObjectNotFound(message, details)
    if code in DENIED_CODES:
        return PermissionDenied(message, details)
    if code in UNAVAILABLE_CODES:
        return StorageUnavailable(message, details)
    return StorageError(message, details)


class StorageClient:
    """
    Storage client binding for one bucket.

    Constructed explicitly from a StorageConfig; nothing here is global.
    The underlying boto3 client is created lazily on first use.
    """

    def __init__(self, config: StorageConfig, s3_client=None):
        self.config = config
        self._client = s3_client

    @property
    def client(self):
        if self._client is None:
            self._client = create_s3_client(self.config)
            logger.info(
                f"Storage client initialized for bucket: {self.config.bucket}",
                extra={"endpoint": self.config.endpoint_url or "default"}
            )
        return self._client

    @property
    def bucket(self) -> str:
        return self.config.bucket

    @contextmanager
    def _operation(self, operation: str, **context):
        """Time the call, record the outcome and translate botocore errors."""
        context = {"bucket": self.bucket, **context}
        start = time.monotonic()
        outcome = "error"
        try:
            yield
            outcome = "ok"
        except GeneratorExit:
            # Consumer stopped iterating early
            outcome = "ok"
            raise
        except ClientError as e:
            raise translate_client_error(e, operation, context) from e
        except BotoCoreError as e:
            # Connection refused, timeouts, missing credentials
            raise StorageUnavailable(
                f"{operation} failed: {e}",
                {**context, "operation": operation}
            ) from e
        finally:
            storage_operations_total.labels(operation=operation, outcome=outcome).inc()
            storage_operation_duration_seconds.labels(operation=operation).observe(
                time.monotonic() - start
            )

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def download(self, key: str, max_bytes: Optional[int] = None) -> bytes:
        """
        Read a whole object into memory.

        Args:
            key: Object key
            max_bytes: Size cap (defaults to the configured download_max_bytes)

        Raises:
            ObjectNotFound: key does not exist
            StorageError: object is larger than max_bytes
        """
        limit = max_bytes if max_bytes is not None else self.config.download_max_bytes

        with self._operation("download", key=key):
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            body = response["Body"]
            try:
                declared = response.get("ContentLength")
                if declared is not None and declared > limit:
                    raise StorageError(
                        f"Object too large: {declared} bytes (max: {limit})",
                        {"key": key, "size": declared}
                    )

                chunks: List[bytes] = []
                total = 0
                for chunk in body.iter_chunks(DOWNLOAD_CHUNK_SIZE):
                    total += len(chunk)
                    if total > limit:
                        raise StorageError(
                            f"Object too large: more than {limit} bytes",
                            {"key": key}
                        )
                    chunks.append(chunk)
                return b"".join(chunks)
            finally:
                body.close()

    def upload(
        self,
        key: str,
        data: bytes,
        metadata: Optional[Mapping[str, str]] = None,
        content_type: Optional[str] = None
    ) -> UploadResult:
        """Put a whole object in one request."""
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
            "Metadata": dict(metadata or {}),
        }
        if content_type:
            params["ContentType"] = content_type

        with self._operation("upload", key=key):
            response = self.client.put_object(**params)

        return UploadResult(
            etag=strip_etag(response.get("ETag")),
            version_id=response.get("VersionId"),
        )

    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key is not an error in S3."""
        with self._operation("delete", key=key):
            self.client.delete_object(Bucket=self.bucket, Key=key)
        logger.debug(f"Deleted object {key}")

    def stat(self, key: str) -> StorageObject:
        """Head an object. Raises ObjectNotFound when missing."""
        with self._operation("stat", key=key):
            response = self.client.head_object(Bucket=self.bucket, Key=key)

        return StorageObject(
            key=key,
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
            etag=strip_etag(response.get("ETag")),
        )

    def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        try:
            self.stat(key)
            return True
        except ObjectNotFound:
            return False

    def list_objects(self, prefix: str = "") -> Iterator[StorageObject]:
        """
        Lazily list objects under a prefix.

        Pages are fetched as the iterator is consumed, so errors surface
        during iteration rather than at call time.
        """
        paginator = self.client.get_paginator("list_objects_v2")

        with self._operation("list_objects", prefix=prefix):
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    yield StorageObject(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        last_modified=item.get("LastModified"),
                        etag=strip_etag(item.get("ETag")),
                    )

    def copy(self, src_key: str, dest_key: str) -> None:
        """Server-side copy within the bucket."""
        with self._operation("copy", key=src_key, dest_key=dest_key):
            self.client.copy_object(
                Bucket=self.bucket,
                Key=dest_key,
                CopySource={"Bucket": self.bucket, "Key": src_key},
            )

    # ------------------------------------------------------------------
    # Multipart
    # ------------------------------------------------------------------

    def init_multipart(self, key: str, content_type: Optional[str] = None) -> str:
        """CreateMultipartUpload. Returns the store's upload id."""
        params: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type

        with self._operation("init_multipart", key=key):
            response = self.client.create_multipart_upload(**params)

        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("Store returned no upload id", {"key": key})
        return upload_id

    def upload_part(self, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        """UploadPart. Returns the part ETag without quotes."""
        with self._operation("upload_part", key=key, upload_id=upload_id, part_number=part_number):
            response = self.client.upload_part(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )

        etag = strip_etag(response.get("ETag"))
        if not etag:
            raise StorageError(
                "Store returned no ETag for part",
                {"key": key, "upload_id": upload_id, "part_number": part_number}
            )
        return etag

    def complete_multipart(
        self,
        key: str,
        upload_id: str,
        parts: Sequence[Tuple[int, str]]
    ) -> str:
        """
        CompleteMultipartUpload.

        Args:
            parts: (part_number, etag) pairs; sent in ascending order

        Returns:
            ETag of the assembled object
        """
        manifest = [
            {"PartNumber": number, "ETag": quote_etag(etag)}
            for number, etag in sorted(parts)
        ]

        with self._operation("complete_multipart", key=key, upload_id=upload_id):
            response = self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": manifest},
            )

        return strip_etag(response.get("ETag"))

    def abort_multipart(self, key: str, upload_id: str) -> None:
        """AbortMultipartUpload."""
        with self._operation("abort_multipart", key=key, upload_id=upload_id):
            self.client.abort_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
            )

    def list_parts(self, key: str, upload_id: str) -> List[StoredPart]:
        """List the parts the store holds for an in-progress upload."""
        paginator = self.client.get_paginator("list_parts")
        parts: List[StoredPart] = []

        with self._operation("list_parts", key=key, upload_id=upload_id):
            for page in paginator.paginate(Bucket=self.bucket, Key=key, UploadId=upload_id):
                for item in page.get("Parts", []):
                    parts.append(StoredPart(
                        part_number=item["PartNumber"],
                        etag=strip_etag(item.get("ETag")),
                        size=item.get("Size", 0),
                        last_modified=item.get("LastModified"),
                    ))

        return sorted(parts, key=lambda part: part.part_number)

    # ------------------------------------------------------------------
    # Buckets and signing
    # ------------------------------------------------------------------

    def bucket_exists(self) -> bool:
        """HeadBucket. False when the bucket is missing, raises otherwise."""
        try:
            with self._operation("head_bucket"):
                self.client.head_bucket(Bucket=self.bucket)
            return True
        except ObjectNotFound:
            return False

    def create_bucket(self, region: Optional[str] = None) -> None:
        """
        CreateBucket in the given region.

        us-east-1 must not be sent as a LocationConstraint.
        """
        params: Dict[str, Any] = {"Bucket": self.bucket}
        if region and region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        with self._operation("create_bucket", region=region):
            self.client.create_bucket(**params)

    def generate_presigned_url(
        self,
        client_method: str,
        params: Dict[str, Any],
        expires_in: int
    ) -> str:
        """Sign a request locally. No network I/O."""
        with self._operation("presign", method=client_method):
            return self.client.generate_presigned_url(
                ClientMethod=client_method,
                Params={"Bucket": self.bucket, **params},
                ExpiresIn=expires_in,
            )

    def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug("Storage client closed")
