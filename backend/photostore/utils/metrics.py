"""
Prometheus metrics definitions for the API and the storage core.
All metrics are registered here and can be imported by other modules.
"""
from prometheus_client import Counter, Histogram

# HTTP request metrics
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'path'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Error metrics
errors_total = Counter(
    'errors_total',
    'Total errors',
    ['error_type']
)

# Storage client metrics
storage_operations_total = Counter(
    'storage_operations_total',
    'Total object store operations',
    ['operation', 'outcome']
)

storage_operation_duration_seconds = Histogram(
    'storage_operation_duration_seconds',
    'Object store operation latency in seconds',
    ['operation'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0]
)

# Multipart session metrics
multipart_sessions_total = Counter(
    'multipart_sessions_total',
    'Multipart upload sessions by lifecycle event',
    ['event']  # started, completed, aborted
)

multipart_parts_bytes_total = Counter(
    'multipart_parts_bytes_total',
    'Total bytes uploaded as multipart parts'
)

presigned_grants_total = Counter(
    'presigned_grants_total',
    'Total presigned URLs issued',
    ['capability']
)
