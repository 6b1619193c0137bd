"""
Test configuration and fixtures.
Uses moto's in-process S3 so no MinIO container is needed.
"""
import os

# Set test environment before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["STORAGE_ENDPOINT_HOST"] = ""
os.environ["STORAGE_BUCKET"] = "test-photos"

import pytest
from typing import AsyncGenerator
from unittest.mock import MagicMock

from httpx import AsyncClient, ASGITransport
from moto import mock_aws

from photostore.config import StorageConfig
from photostore.storage.backend import StorageBackend
from photostore.storage.client import StorageClient
from photostore.storage.multipart import MultipartCoordinator


TEST_BUCKET = "test-photos"
MB = 1024 * 1024


@pytest.fixture
def storage_config() -> StorageConfig:
    """Config pointing at the provider default endpoint (intercepted by moto)."""
    return StorageConfig(
        bucket=TEST_BUCKET,
        region="us-east-1",
        access_key="testing",
        secret_key="testing",
        verify_delay=0,
    )


@pytest.fixture
def minio_config() -> StorageConfig:
    """Config for an internal MinIO endpoint. Only usable for local signing."""
    return StorageConfig(
        bucket="bucket",
        region="us-east-1",
        endpoint_host="minio",
        endpoint_port=9000,
        access_key="admin",
        secret_key="password123",
        public_url="https://cdn.example.com",
    )


@pytest.fixture
def mocked_aws():
    """Activate moto for the duration of the test."""
    with mock_aws():
        yield


@pytest.fixture
def storage(mocked_aws, storage_config: StorageConfig) -> StorageClient:
    """Storage client bound to a freshly created test bucket."""
    client = StorageClient(storage_config)
    client.create_bucket()
    yield client
    client.close()


@pytest.fixture
def coordinator(storage: StorageClient) -> MultipartCoordinator:
    return MultipartCoordinator(storage, verify_delay=0)


@pytest.fixture
def mock_storage() -> MagicMock:
    """Storage client double for asserting which remote calls were made."""
    storage = MagicMock(spec=StorageClient)
    storage.bucket = TEST_BUCKET
    storage.init_multipart.return_value = "upload-1"
    storage.upload_part.side_effect = lambda key, upload_id, number, data: f"etag-{number}"
    storage.complete_multipart.return_value = "final-etag"
    storage.exists.return_value = True
    return storage


@pytest.fixture
def backend(mocked_aws, storage_config: StorageConfig) -> StorageBackend:
    """Storage backend with the bucket provisioned."""
    backend = StorageBackend(storage_config)
    backend.ensure_bucket()
    yield backend
    backend.close()


@pytest.fixture
async def client(backend: StorageBackend) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    from photostore.main import create_app

    app = create_app(backend)
    # ASGITransport does not run lifespan events
    app.state.storage = backend

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
