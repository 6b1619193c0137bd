"""
Application configuration using Pydantic Settings.
All environment variables are loaded here with sensible defaults.
"""
from dataclasses import dataclass
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = "dev"
    log_level: str = "INFO"

    # S3-compatible object storage (MinIO in dev, any S3 API in prod)
    # Internal endpoint - what this service talks to directly
    storage_endpoint_host: str = "localhost"  # empty string = provider default (AWS)
    storage_endpoint_port: int = 9000
    storage_use_ssl: bool = False
    storage_access_key: Optional[str] = None
    storage_secret_key: Optional[str] = None
    storage_bucket: str = "pis-photos"
    storage_region: str = "us-east-1"
    storage_timeout: int = 30  # connect/read timeout in seconds

    # Externally reachable base for URLs handed to clients
    # e.g. https://cdn.example.com or https://cdn.example.com/media
    storage_public_url: Optional[str] = None

    # Presigned URL expiration in seconds (1 hour)
    presign_expiration: int = 3600

    # Delay before the post-complete existence check, in seconds
    multipart_verify_delay: float = 1.0

    # How long finished sessions are remembered (repeat complete/abort are no-ops)
    multipart_session_retention: float = 3600.0

    # Open sessions with no new part for this long are dropped locally
    multipart_idle_timeout: float = 86400.0

    # Largest object download() will buffer in memory (100 MB)
    download_max_bytes: int = 100 * 1024 * 1024

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@dataclass(frozen=True)
class StorageConfig:
    """
    Connection settings for one storage backend.

    Built from Settings for the default backend, or constructed directly
    when a process talks to several independently configured stores.
    """
    bucket: str
    region: str = "us-east-1"
    endpoint_host: Optional[str] = None
    endpoint_port: Optional[int] = None
    use_ssl: bool = False
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    public_url: Optional[str] = None
    presign_expiration: int = 3600
    verify_delay: float = 1.0
    session_retention: float = 3600.0
    session_idle_timeout: float = 86400.0
    download_max_bytes: int = 100 * 1024 * 1024
    timeout: int = 30

    @property
    def endpoint_url(self) -> Optional[str]:
        """Internal endpoint URL, or None to use the provider default."""
        if not self.endpoint_host:
            return None
        scheme = "https" if self.use_ssl else "http"
        if self.endpoint_port:
            return f"{scheme}://{self.endpoint_host}:{self.endpoint_port}"
        return f"{scheme}://{self.endpoint_host}"

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            bucket=settings.storage_bucket,
            region=settings.storage_region,
            endpoint_host=settings.storage_endpoint_host or None,
            endpoint_port=settings.storage_endpoint_port,
            use_ssl=settings.storage_use_ssl,
            access_key=settings.storage_access_key,
            secret_key=settings.storage_secret_key,
            public_url=settings.storage_public_url,
            presign_expiration=settings.presign_expiration,
            verify_delay=settings.multipart_verify_delay,
            session_retention=settings.multipart_session_retention,
            session_idle_timeout=settings.multipart_idle_timeout,
            download_max_bytes=settings.download_max_bytes,
            timeout=settings.storage_timeout,
        )


# Global settings instance
settings = Settings()
