"""Prometheus metrics for the pricing engine.

Defines and exposes operational metrics for monitoring and alerting.
"""

from prometheus_client import Counter, Histogram

# Price resolution metrics
price_resolutions_total = Counter(
    "pricing_resolutions_total",
    "Total single-SKU price resolutions",
    ["source", "status"]  # source: override|customer_specific|standard|none, status: success|not_found
)

price_resolution_duration_seconds = Histogram(
    "pricing_resolution_duration_seconds",
    "Time spent resolving one SKU price in seconds",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

# Bulk upsert metrics
bulk_upsert_items_total = Counter(
    "pricing_bulk_upsert_items_total",
    "Price list items processed by bulk upsert",
    ["outcome"]  # outcome: created|updated|error
)

# Synchronization metrics
sync_jobs_total = Counter(
    "pricing_sync_jobs_total",
    "Sync jobs reaching a final status",
    ["job_type", "status"]  # job_type: FULL_SYNC|DELTA_SYNC, status: COMPLETED|FAILED|CANCELLED
)

sync_items_total = Counter(
    "pricing_sync_items_total",
    "Items processed by sync jobs",
    ["outcome"]  # outcome: success|error
)

sync_duration_seconds = Histogram(
    "pricing_sync_duration_seconds",
    "Wall time of a sync job run in seconds",
    ["job_type"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0]
)
