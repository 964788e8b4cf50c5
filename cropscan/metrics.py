from prometheus_client import Counter, Histogram
# Prometheus metrics definitions

# Total number of diagnosis requests that reached the pipeline
diag_requests_total = Counter(
    "diag_requests_total", "Total diagnosis requests"
)

# Inference dominates; buckets stop at the 30s client timeout
_diag_latency_buckets = (
    0.5,
    1.0,
    2.0,
    4.0,
    8.0,
    16.0,
    30.0,
)

# Measured from validated upload to stored record (or failure)
diag_latency_seconds = Histogram(
    "diag_latency_seconds", "Diagnosis latency", buckets=_diag_latency_buckets
)

# Uploads rejected before any inference call
diag_validation_reject_total = Counter(
    "diag_validation_reject_total", "Uploads rejected by validation"
)

# Incremented when the inference call times out
inference_timeout_total = Counter(
    "inference_timeout_total", "Number of inference timeouts"
)

# Model replied with text that did not parse into a diagnostic
ai_parse_failure_total = Counter(
    "ai_parse_failure_total", "Number of unparseable model responses"
)

diag_created_total = Counter(
    "diag_created_total", "Number of diagnostic records created"
)

__all__ = [
    "ai_parse_failure_total",
    "diag_created_total",
    "diag_latency_seconds",
    "diag_requests_total",
    "diag_validation_reject_total",
    "inference_timeout_total",
]
