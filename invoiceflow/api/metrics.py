"""Prometheus metrics for the InvoiceFlow API.

HTTP metrics are labelled by route template (/invoices/{invoice_id}), never by
the concrete path. Domain metrics cover extraction outcomes, persisted
invoices and server-side upload sizes.

Naming follows https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# HTTP
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Invoices
invoices_processed_total = Counter(
    "invoices_processed_total",
    "Total invoice processing requests",
    ["status"],  # success, failed
)

extraction_requests_total = Counter(
    "extraction_requests_total",
    "Total model extraction requests",
    ["status"],  # success, failed
)

extraction_processing_duration_seconds = Histogram(
    "extraction_processing_duration_seconds",
    "Invoice extraction duration in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

attachment_upload_size_bytes = Histogram(
    "attachment_upload_size_bytes",
    "Attachment size in bytes for server-side uploads",
    buckets=(10240, 102400, 1048576, 5242880, 26214400),  # 10KB to 25MB
)


def get_metrics() -> tuple[bytes, str]:
    """Render the default registry in the Prometheus text exposition format."""
    return generate_latest(), CONTENT_TYPE_LATEST
