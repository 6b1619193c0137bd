"""
Tests for internal/public URL translation.
"""
import logging

import pytest

from photostore.storage.endpoints import to_internal_url, to_public_url

INTERNAL = "http://minio:9000/bucket/raw/x.jpg"


class TestToPublicUrl:
    """Tests for to_public_url."""

    def test_host_only_base_keeps_bucket_path(self):
        assert to_public_url(INTERNAL, "https://cdn.example.com", "bucket") == \
            "https://cdn.example.com/bucket/raw/x.jpg"

    def test_path_prefix_replaces_bucket_segment(self):
        assert to_public_url(INTERNAL, "https://cdn.example.com/media", "bucket") == \
            "https://cdn.example.com/media/raw/x.jpg"

    def test_path_prefix_with_trailing_slash(self):
        assert to_public_url(INTERNAL, "https://cdn.example.com/media/", "bucket") == \
            "https://cdn.example.com/media/raw/x.jpg"

    def test_missing_scheme_defaults_to_http(self):
        assert to_public_url(INTERNAL, "cdn.example.com:8080", "bucket") == \
            "http://cdn.example.com:8080/bucket/raw/x.jpg"

    def test_public_port_replaces_internal_port(self):
        result = to_public_url(INTERNAL, "http://photos.local:8443", "bucket")
        assert result == "http://photos.local:8443/bucket/raw/x.jpg"

    def test_query_string_preserved(self):
        url = "http://minio:9000/bucket/raw/x.jpg?X-Amz-Signature=abc&X-Amz-Expires=600"
        result = to_public_url(url, "https://cdn.example.com/media", "bucket")
        assert result == "https://cdn.example.com/media/raw/x.jpg?X-Amz-Signature=abc&X-Amz-Expires=600"

    def test_path_outside_bucket_left_alone(self):
        url = "http://minio:9000/other/raw/x.jpg"
        assert to_public_url(url, "https://cdn.example.com/media", "bucket") == \
            "https://cdn.example.com/other/raw/x.jpg"

    def test_no_public_base_returns_input(self):
        assert to_public_url(INTERNAL, None, "bucket") == INTERNAL
        assert to_public_url(INTERNAL, "", "bucket") == INTERNAL

    @pytest.mark.parametrize("public_base", [
        "http://cdn.example.com:notaport",
        "http://[::1",
        "ftp://cdn.example.com",
        "http://",
    ])
    def test_malformed_public_base_returns_input(self, public_base, caplog):
        """Malformed configuration never raises."""
        with caplog.at_level(logging.WARNING, logger="photostore.storage.endpoints"):
            assert to_public_url(INTERNAL, public_base, "bucket") == INTERNAL
        assert "Failed to convert to public URL" in caplog.text

    def test_malformed_input_url_returns_input(self):
        assert to_public_url("not a url", "https://cdn.example.com", "bucket") == "not a url"


class TestToInternalUrl:
    """Tests for to_internal_url."""

    def test_round_trip_with_prefix(self):
        public = to_public_url(INTERNAL + "?sig=1", "https://cdn.example.com/media", "bucket")
        assert to_internal_url(public, "http://minio:9000", "https://cdn.example.com/media", "bucket") == \
            INTERNAL + "?sig=1"

    def test_host_only_base(self):
        url = "https://cdn.example.com/bucket/raw/x.jpg"
        assert to_internal_url(url, "http://minio:9000", "https://cdn.example.com", "bucket") == INTERNAL

    def test_foreign_host_unchanged(self):
        url = "https://elsewhere.example.com/media/raw/x.jpg"
        assert to_internal_url(url, "http://minio:9000", "https://cdn.example.com/media", "bucket") == url

    def test_malformed_internal_base_returns_input(self):
        url = "https://cdn.example.com/bucket/raw/x.jpg"
        assert to_internal_url(url, "http://minio:port", "https://cdn.example.com", "bucket") == url
