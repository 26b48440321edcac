"""
Prometheus-based metrics for image generation and the key pool.
"""
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST


# Counters
image_generation_requests_total = Counter(
    "image_generation_requests_total",
    "Total image generation requests by outcome",
    ["provider", "status"],  # status: succeeded or a FailureType value
)

grsai_poll_attempts_total = Counter(
    "grsai_poll_attempts_total",
    "Total Grsai result poll requests",
    ["outcome"],  # running, succeeded, failed, retry, not_found
)

key_pool_invalidations_total = Counter(
    "key_pool_invalidations_total",
    "Credentials marked invalid after provider rejection",
    ["pool"],
)

# Histograms
image_generation_duration_seconds = Histogram(
    "image_generation_duration_seconds",
    "End-to-end generation duration",
    ["provider"],
    buckets=[1, 5, 10, 30, 60, 120, 300],
)


def render_metrics() -> tuple[bytes, str]:
    """Exposition payload and content type for a scrape endpoint."""
    return generate_latest(), CONTENT_TYPE_LATEST
