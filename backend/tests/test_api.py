"""
Tests for API endpoints.
Uses httpx AsyncClient for testing FastAPI routes against moto.
"""
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient

from photostore.exceptions import BucketProvisioningFailed
from photostore.main import create_app
from photostore.storage.backend import StorageBackend

MB = 1024 * 1024


async def _start_upload(client: AsyncClient, key: str = "raw/album-1/IMG_0001.jpg") -> str:
    response = await client.post("/api/uploads", json={"key": key, "content_type": "image/jpeg"})
    assert response.status_code == 201
    return response.json()["session_id"]


class TestRootEndpoint:
    """Tests for root and operational endpoints."""

    @pytest.mark.asyncio
    async def test_root_returns_info(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Photostore Upload API"
        assert "version" in data

    @pytest.mark.asyncio
    async def test_health_reports_bucket(self, client: AsyncClient):
        response = await client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage"] == "connected"
        assert data["bucket"] == "test-photos"

    @pytest.mark.asyncio
    async def test_health_unhealthy_without_bucket(self, client: AsyncClient, backend: StorageBackend):
        backend.storage.client.delete_bucket(Bucket="test-photos")

        response = await client.get("/api/health")

        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_metrics_exposed(self, client: AsyncClient):
        await client.get("/")
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text


class TestUploadEndpoints:
    """Server-mediated multipart flow."""

    @pytest.mark.asyncio
    async def test_full_upload_flow(self, client: AsyncClient, backend: StorageBackend):
        session_id = await _start_upload(client)

        first = await client.put(f"/api/uploads/{session_id}/parts/1", content=b"a" * (5 * MB))
        second = await client.put(f"/api/uploads/{session_id}/parts/2", content=b"b" * 1024)
        assert first.status_code == 200
        assert first.json()["size_bytes"] == 5 * MB
        assert second.json()["part_number"] == 2

        response = await client.post(f"/api/uploads/{session_id}/complete")

        assert response.status_code == 200
        data = response.json()
        assert data["completed"] is True
        assert data["part_count"] == 2
        assert data["size_bytes"] == 5 * MB + 1024
        assert data["verified"] is True
        assert backend.storage.stat("raw/album-1/IMG_0001.jpg").size == 5 * MB + 1024

    @pytest.mark.asyncio
    async def test_get_session_state(self, client: AsyncClient):
        session_id = await _start_upload(client)
        await client.put(f"/api/uploads/{session_id}/parts/1", content=b"data")

        response = await client.get(f"/api/uploads/{session_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "uploading"
        assert [p["part_number"] for p in data["parts"]] == [1]

    @pytest.mark.asyncio
    async def test_gap_in_parts_is_conflict(self, client: AsyncClient):
        session_id = await _start_upload(client)
        await client.put(f"/api/uploads/{session_id}/parts/2", content=b"data")

        response = await client.post(f"/api/uploads/{session_id}/complete")

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "IncompletePartSequence"
        assert data["details"]["missing"] == [1]

    @pytest.mark.asyncio
    async def test_abort_is_idempotent(self, client: AsyncClient):
        session_id = await _start_upload(client)

        assert (await client.delete(f"/api/uploads/{session_id}")).status_code == 204
        assert (await client.delete(f"/api/uploads/{session_id}")).status_code == 204

    @pytest.mark.asyncio
    async def test_complete_after_abort_is_not_an_error(self, client: AsyncClient):
        session_id = await _start_upload(client)
        await client.put(f"/api/uploads/{session_id}/parts/1", content=b"data")
        await client.delete(f"/api/uploads/{session_id}")

        response = await client.post(f"/api/uploads/{session_id}/complete")

        assert response.status_code == 200
        assert response.json()["completed"] is False

    @pytest.mark.asyncio
    async def test_part_after_abort_is_bad_gateway(self, client: AsyncClient):
        session_id = await _start_upload(client)
        await client.delete(f"/api/uploads/{session_id}")

        response = await client.put(f"/api/uploads/{session_id}/parts/1", content=b"data")

        assert response.status_code == 502
        assert response.json()["error"] == "PartUploadFailed"

    @pytest.mark.asyncio
    async def test_unknown_session(self, client: AsyncClient):
        response = await client.put("/api/uploads/deadbeef/parts/1", content=b"data")

        assert response.status_code == 404
        assert response.json()["error"] == "SessionNotFound"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("part_number", [0, 10001])
    async def test_part_number_out_of_range(self, client: AsyncClient, part_number):
        session_id = await _start_upload(client)

        response = await client.put(f"/api/uploads/{session_id}/parts/{part_number}", content=b"data")

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_empty_key_rejected(self, client: AsyncClient):
        response = await client.post("/api/uploads", json={"key": ""})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_resume_upload(self, client: AsyncClient, backend: StorageBackend):
        upload_id = backend.storage.init_multipart("raw/resumed.jpg")
        backend.storage.upload_part("raw/resumed.jpg", upload_id, 1, b"stored")

        response = await client.post(
            "/api/uploads/resume", json={"key": "raw/resumed.jpg", "upload_id": upload_id}
        )
        assert response.status_code == 201
        session_id = response.json()["session_id"]

        complete = await client.post(f"/api/uploads/{session_id}/complete")
        assert complete.json()["size_bytes"] == 6


class TestPresignEndpoints:
    """Presigned grants over HTTP."""

    @pytest.mark.asyncio
    async def test_write_grant(self, client: AsyncClient):
        response = await client.post(
            "/api/presign",
            json={"key": "raw/x.jpg", "capability": "write", "ttl": 600}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["method"] == "PUT"
        assert data["capability"] == "write"
        assert "X-Amz-Signature=" in data["url"]
        assert 590 <= data["expires_in"] <= 600

    @pytest.mark.asyncio
    async def test_read_grant(self, client: AsyncClient):
        response = await client.post("/api/presign", json={"key": "raw/x.jpg", "capability": "read"})

        assert response.status_code == 200
        assert response.json()["method"] == "GET"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -1, 604801])
    async def test_invalid_ttl(self, client: AsyncClient, ttl):
        response = await client.post(
            "/api/presign",
            json={"key": "raw/x.jpg", "capability": "read", "ttl": ttl}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidExpiry"

    @pytest.mark.asyncio
    async def test_part_capability_needs_session(self, client: AsyncClient):
        response = await client.post(
            "/api/presign",
            json={"key": "raw/x.jpg", "capability": "write_part"}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_part_grant_for_session(self, client: AsyncClient, backend: StorageBackend):
        session_id = await _start_upload(client)
        upload_id = backend.coordinator.get_session(session_id).upload_id

        response = await client.post(f"/api/uploads/{session_id}/parts/3/presign", json={"ttl": 300})

        assert response.status_code == 200
        data = response.json()
        assert data["part_number"] == 3
        assert data["capability"] == "write_part"
        assert f"uploadId={upload_id}" in data["url"]
        assert "partNumber=3" in data["url"]

    @pytest.mark.asyncio
    async def test_part_grant_refused_after_abort(self, client: AsyncClient):
        session_id = await _start_upload(client)
        await client.delete(f"/api/uploads/{session_id}")

        response = await client.post(f"/api/uploads/{session_id}/parts/1/presign")

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "PartUploadFailed"
        assert "url" not in data

    @pytest.mark.asyncio
    async def test_part_grant_without_body(self, client: AsyncClient):
        session_id = await _start_upload(client)

        response = await client.post(f"/api/uploads/{session_id}/parts/1/presign")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_client_direct_flow(self, client: AsyncClient, backend: StorageBackend):
        """Parts sent straight to storage are picked up by complete?sync=true."""
        session_id = await _start_upload(client, "raw/direct.jpg")
        session = backend.coordinator.get_session(session_id)
        backend.storage.upload_part(session.object_key, session.upload_id, 1, b"direct-bytes")

        response = await client.post(f"/api/uploads/{session_id}/complete", params={"sync": "true"})

        assert response.status_code == 200
        assert response.json()["size_bytes"] == 12


class TestLifespan:
    """Startup and shutdown of the storage backend."""

    @pytest.mark.asyncio
    async def test_backend_closed_when_bucket_setup_fails(self):
        backend = MagicMock(spec=StorageBackend)
        backend.ensure_bucket.side_effect = BucketProvisioningFailed("AccessDenied")
        app = create_app(backend)

        with pytest.raises(BucketProvisioningFailed):
            async with app.router.lifespan_context(app):
                pass

        backend.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_backend_closed_on_shutdown(self):
        backend = MagicMock(spec=StorageBackend)
        app = create_app(backend)

        async with app.router.lifespan_context(app):
            assert app.state.storage is backend
            backend.close.assert_not_called()

        backend.close.assert_called_once()
