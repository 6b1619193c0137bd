"""
Production logging utility for structured JSON logging.

Provides event-specific logging functions with mandatory fields:
- timestamp (ISO8601)
- level
- service
- event

Optional fields (included when applicable):
- object_key
- session_id
- part_number
- duration_ms

Usage:
    from photostore.utils.logging import configure_logging, log_upload_initiated

    configure_logging('photostore-api', 'INFO')
    log_upload_initiated(logger, session_id='123', object_key='raw/a.jpg', duration_ms=45.2)
"""
import logging
import sys
from typing import Optional, Dict, Any
from pythonjsonlogger import jsonlogger


class StructuredLogger:
    """Structured JSON logger with mandatory fields."""

    _service_name = None
    _configured = False

    @classmethod
    def configure(cls, service_name: str, log_level: str = "INFO"):
        """
        Configure structured JSON logging for the application.

        Args:
            service_name: Service identifier (e.g. photostore-api)
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        if cls._configured:
            return  # Already configured

        cls._service_name = service_name

        # Remove default handlers
        root_logger = logging.getLogger()
        root_logger.handlers = []

        formatter = jsonlogger.JsonFormatter(
            '%(timestamp)s %(levelname)s %(name)s %(message)s',
            timestamp=True,
            json_ensure_ascii=False
        )

        # Console handler (for docker logs)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)

        root_logger.addHandler(handler)
        root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

        # botocore is very chatty at DEBUG
        logging.getLogger("botocore").setLevel(logging.WARNING)

        # Add service name to all log records via filter
        class ServiceFilter(logging.Filter):
            def filter(self, record):
                record.service = cls._service_name
                return True

        handler.addFilter(ServiceFilter())
        cls._configured = True


def _build_log_extra(
    event: str,
    object_key: Optional[str] = None,
    session_id: Optional[str] = None,
    part_number: Optional[int] = None,
    duration_ms: Optional[float] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Build extra fields for structured logging.

    Args:
        event: Event name (mandatory)
        object_key: Optional object key
        session_id: Optional upload session ID
        part_number: Optional part number
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields

    Returns:
        Dictionary of extra fields
    """
    extra = {
        "event": event,
        **kwargs
    }

    if object_key:
        extra["object_key"] = object_key
    if session_id:
        extra["session_id"] = session_id
    if part_number is not None:
        extra["part_number"] = part_number
    if duration_ms is not None:
        extra["duration_ms"] = round(duration_ms, 2)

    return extra


# Multipart session event functions

def log_upload_initiated(
    logger: logging.Logger,
    session_id: str,
    object_key: str,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log creation of a multipart upload session."""
    extra = _build_log_extra(
        event="upload_initiated",
        object_key=object_key,
        session_id=session_id,
        duration_ms=duration_ms,
        **kwargs
    )
    logger.info(f"Upload initiated: {session_id} ({object_key})", extra=extra)


def log_part_uploaded(
    logger: logging.Logger,
    session_id: str,
    part_number: int,
    size_bytes: int,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """Log a successfully stored part. Emitted at DEBUG, parts are frequent."""
    extra = _build_log_extra(
        event="part_uploaded",
        session_id=session_id,
        part_number=part_number,
        duration_ms=duration_ms,
        size_bytes=size_bytes,
        **kwargs
    )
    logger.debug(f"Part {part_number} uploaded for {session_id}", extra=extra)


def log_upload_completed(
    logger: logging.Logger,
    session_id: str,
    object_key: str,
    part_count: int,
    duration_ms: Optional[float] = None,
    **kwargs
):
    """
    Log multipart completion.

    Args:
        logger: Logger instance
        session_id: Session ID (required)
        object_key: Assembled object key (required)
        part_count: Number of parts in the manifest
        duration_ms: Optional duration in milliseconds
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="upload_completed",
        object_key=object_key,
        session_id=session_id,
        duration_ms=duration_ms,
        part_count=part_count,
        **kwargs
    )
    logger.info(f"Upload completed: {session_id} ({part_count} parts)", extra=extra)


def log_upload_aborted(
    logger: logging.Logger,
    session_id: str,
    object_key: str,
    **kwargs
):
    """Log multipart abort."""
    extra = _build_log_extra(
        event="upload_aborted",
        object_key=object_key,
        session_id=session_id,
        **kwargs
    )
    logger.info(f"Upload aborted: {session_id}", extra=extra)


def log_storage_failure(
    logger: logging.Logger,
    operation: str,
    error: str,
    object_key: Optional[str] = None,
    session_id: Optional[str] = None,
    part_number: Optional[int] = None,
    duration_ms: Optional[float] = None,
    include_traceback: bool = False,
    **kwargs
):
    """
    Log a failed storage operation.

    Args:
        logger: Logger instance
        operation: Operation name (upload_part, complete, ...) (required)
        error: Error message (required)
        object_key: Optional object key
        session_id: Optional session ID
        part_number: Optional part number
        duration_ms: Optional duration in milliseconds
        include_traceback: Whether to include stack trace (default: False)
        **kwargs: Additional fields
    """
    extra = _build_log_extra(
        event="storage_failure",
        object_key=object_key,
        session_id=session_id,
        part_number=part_number,
        duration_ms=duration_ms,
        operation=operation,
        error=str(error),
        **kwargs
    )

    message = f"Storage failure: {operation} - {error}"

    if include_traceback:
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            logger.error(message, extra=extra, exc_info=exc_info)
        else:
            logger.error(message, extra=extra)
    else:
        logger.error(message, extra=extra)


def configure_logging(service_name: str, log_level: str = "INFO"):
    """Configure logging (alias for StructuredLogger.configure)."""
    StructuredLogger.configure(service_name, log_level)
