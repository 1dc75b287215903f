from prometheus_client import Counter, Gauge, Histogram

# --- Dispatch Metrics ---

# Counter for tracking the outcome of every trigger firing.
# Labels:
# - outcome: "success", "http_error", "transport_error" or "status_write_failed".
# - method: The outbound HTTP method (e.g., "POST").
DISPATCH_TOTAL = Counter(
    "scheduler_dispatch_total",
    "Total number of job firings by outcome.",
    ["outcome", "method"],
)

# Histogram for tracking the latency of the outbound HTTP call of each firing.
# The buckets cover fast webhooks up to the default dispatch timeout.
DISPATCH_LATENCY_SECONDS = Histogram(
    "scheduler_dispatch_latency_seconds",
    "Latency of the outbound HTTP request made by a job firing.",
    ["method"],
    buckets=[0.05, 0.1, 0.5, 1, 2.5, 5, 10, 30, 60],
)

# --- Lifecycle Metrics ---

# Counter for tracking reconciler operations.
# Labels:
# - operation: "create", "replace", "delete" or "delete_all".
# - result: "ok" or "error".
LIFECYCLE_OPERATIONS_TOTAL = Counter(
    "scheduler_lifecycle_operations_total",
    "Total number of job lifecycle operations.",
    ["operation", "result"],
)

# Gauge for the number of live schedules held by the engine.
LIVE_SCHEDULES = Gauge(
    "scheduler_live_schedules",
    "Number of live schedules currently registered.",
)
