"""
Translation between internal and public storage URLs.

The service signs URLs against the internal endpoint (e.g. http://minio:9000)
while clients reach storage through a public base, often a reverse proxy
(e.g. https://cdn.example.com/media). These helpers rewrite scheme, host and
port, and optionally swap the leading /{bucket}/ path segment for the
public path prefix. The query string (including any signature) is kept.

Translation is a convenience: on malformed input the original URL is
returned unchanged and a warning is logged.
"""
import logging
from typing import Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


def _parse_base(base: str) -> SplitResult:
    """Parse a base URL, defaulting to http:// when no scheme is given."""
    if "://" not in base:
        base = f"http://{base}"
    parts = urlsplit(base)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValueError(f"not an http(s) base URL: {base!r}")
    parts.port  # raises ValueError on a non-numeric or out of range port
    return parts


def _path_prefix(parts: SplitResult) -> str:
    """Path of a base URL, normalised to end with a slash."""
    path = parts.path or "/"
    return path if path.endswith("/") else f"{path}/"


def to_public_url(url: str, public_base: Optional[str], bucket: str) -> str:
    """
    Rewrite an internal storage URL to the public base.

    >>> to_public_url("http://minio:9000/bucket/raw/x.jpg", "https://cdn.example.com", "bucket")
    'https://cdn.example.com/bucket/raw/x.jpg'
    >>> to_public_url("http://minio:9000/bucket/raw/x.jpg", "https://cdn.example.com/media", "bucket")
    'https://cdn.example.com/media/raw/x.jpg'
    """
    if not public_base:
        return url

    try:
        public = _parse_base(public_base)
        source = urlsplit(url)
        if not source.scheme or not source.netloc:
            raise ValueError(f"not an absolute URL: {url!r}")

        path = source.path
        bucket_path = f"/{bucket}/"
        public_path = _path_prefix(public)
        if public_path != "/" and path.startswith(bucket_path):
            path = public_path + path[len(bucket_path):]

        return urlunsplit(
            (public.scheme, public.netloc, path, source.query, source.fragment)
        )
    except ValueError as e:
        logger.warning(
            f"Failed to convert to public URL: {e}",
            extra={"event": "endpoint_translation_failed", "public_base": public_base}
        )
        return url


def to_internal_url(
    url: str,
    internal_base: Optional[str],
    public_base: Optional[str],
    bucket: str
) -> str:
    """
    Inverse of to_public_url: map a public URL back onto the internal endpoint.

    A public path prefix is replaced with /{bucket}/. URLs that do not
    point at the public host are returned as-is.
    """
    if not internal_base or not public_base:
        return url

    try:
        internal = _parse_base(internal_base)
        public = _parse_base(public_base)
        source = urlsplit(url)

        if (source.hostname, source.port) != (public.hostname, public.port):
            return url

        path = source.path
        public_path = _path_prefix(public)
        if public_path != "/" and path.startswith(public_path):
            path = f"/{bucket}/" + path[len(public_path):]

        return urlunsplit(
            (internal.scheme, internal.netloc, path, source.query, source.fragment)
        )
    except ValueError as e:
        logger.warning(
            f"Failed to convert to internal URL: {e}",
            extra={"event": "endpoint_translation_failed", "public_base": public_base}
        )
        return url
