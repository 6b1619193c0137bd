"""
Tests for bucket provisioning.
"""
from unittest.mock import MagicMock

import pytest

from photostore.config import StorageConfig
from photostore.exceptions import (
    BucketProvisioningFailed,
    PermissionDenied,
    StorageError,
    StorageUnavailable,
)
from photostore.storage.buckets import ensure_bucket
from photostore.storage.client import StorageClient

TEST_BUCKET = "test-photos"


@pytest.fixture
def fresh_storage(mocked_aws, storage_config: StorageConfig) -> StorageClient:
    """Client whose bucket does not exist yet."""
    client = StorageClient(storage_config)
    yield client
    client.close()


class TestEnsureBucket:
    """Tests against moto."""

    def test_creates_missing_bucket(self, fresh_storage: StorageClient):
        assert fresh_storage.bucket_exists() is False

        assert ensure_bucket(fresh_storage) is True
        assert fresh_storage.bucket_exists() is True

    def test_second_call_is_noop(self, fresh_storage: StorageClient):
        ensure_bucket(fresh_storage)

        assert ensure_bucket(fresh_storage) is False

    def test_non_default_region(self, mocked_aws):
        config = StorageConfig(
            bucket="eu-photos",
            region="eu-west-1",
            access_key="testing",
            secret_key="testing",
        )
        storage = StorageClient(config)

        assert ensure_bucket(storage) is True
        location = storage.client.get_bucket_location(Bucket="eu-photos")
        assert location["LocationConstraint"] == "eu-west-1"


class TestEnsureBucketFailures:
    """Tests with a storage double."""

    @pytest.fixture
    def storage(self) -> MagicMock:
        storage = MagicMock(spec=StorageClient)
        storage.bucket = TEST_BUCKET
        storage.bucket_exists.return_value = False
        return storage

    @pytest.mark.parametrize("code", ["BucketAlreadyOwnedByYou", "BucketAlreadyExists"])
    def test_created_concurrently_is_success(self, storage, code):
        storage.create_bucket.side_effect = StorageError(code, {"code": code})

        assert ensure_bucket(storage, "us-east-1") is False

    def test_create_failure_is_fatal(self, storage):
        storage.create_bucket.side_effect = PermissionDenied("AccessDenied", {"code": "AccessDenied"})

        with pytest.raises(BucketProvisioningFailed) as exc_info:
            ensure_bucket(storage, "us-east-1")

        assert exc_info.value.details["bucket"] == TEST_BUCKET
        assert exc_info.value.details["code"] == "AccessDenied"
        assert isinstance(exc_info.value.__cause__, PermissionDenied)

    def test_unreachable_store_is_fatal(self, storage):
        storage.bucket_exists.side_effect = StorageUnavailable("connection refused")

        with pytest.raises(BucketProvisioningFailed):
            ensure_bucket(storage, "us-east-1")
        storage.create_bucket.assert_not_called()
