"""Prometheus metrics for the token lifecycle."""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "authkeeper_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "authkeeper_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
TOKENS_ISSUED = Counter(
    "authkeeper_tokens_issued_total",
    "Tokens minted",
    ["kind"],
)
REFRESH_REJECTIONS = Counter(
    "authkeeper_refresh_rejections_total",
    "Refresh tokens rejected, by internal reason",
    ["reason"],
)
REVOCATIONS = Counter(
    "authkeeper_revocations_total",
    "Revocations written",
    ["kind"],
)
REGISTRY_LOOKUP_FAILURES = Counter(
    "authkeeper_revocation_lookup_failures_total",
    "Revocation registry lookups that failed and were denied",
)
