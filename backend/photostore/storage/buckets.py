"""Bucket provisioning, run once at process start."""
import logging
from typing import Optional

from photostore.exceptions import BucketProvisioningFailed, StorageError
from photostore.storage.client import StorageClient

logger = logging.getLogger(__name__)

# Codes meaning "someone created it first", which is what we wanted
ALREADY_EXISTS_CODES = {"BucketAlreadyOwnedByYou", "BucketAlreadyExists"}


def ensure_bucket(storage: StorageClient, region: Optional[str] = None) -> bool:
    """
    Make sure the configured bucket exists, creating it if absent.

    Safe to call on every start. A failure here is fatal: nothing
    downstream can work without the bucket.

    Returns:
        True if the bucket was created by this call

    Raises:
        BucketProvisioningFailed: the bucket could not be checked or created
    """
    region = region or storage.config.region

    try:
        if storage.bucket_exists():
            logger.debug(f"Bucket {storage.bucket} exists")
            return False

        try:
            storage.create_bucket(region)
        except StorageError as e:
            if e.details.get("code") in ALREADY_EXISTS_CODES:
                logger.info(f"Bucket {storage.bucket} was created concurrently")
                return False
            raise
    except StorageError as e:
        logger.error(
            f"Error ensuring bucket {storage.bucket}: {e}",
            extra={"event": "bucket_provisioning_failed", "bucket": storage.bucket}
        )
        raise BucketProvisioningFailed(
            f"Failed to ensure bucket {storage.bucket}: {e.message}",
            {**e.details, "bucket": storage.bucket, "region": region}
        ) from e

    logger.info(
        f"Created bucket {storage.bucket} in {region}",
        extra={"event": "bucket_created", "bucket": storage.bucket, "region": region}
    )
    return True
