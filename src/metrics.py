"""
Prometheus metrics for the reconciliation engine.

Metrics are registered on the default prometheus_client registry and
exposed by the HTTP surface in monitoring.py.
"""

from prometheus_client import Counter, Gauge

OPERATIONS = Counter(
    "converge_operations_total",
    "Adapter operations completed, by kind, operation and outcome",
    ["kind", "operation", "outcome"],
)

PROVIDER_RETRIES = Counter(
    "converge_provider_retries_total",
    "Provider calls retried after a transient failure",
    ["reason"],
)

WATCH_EVENTS = Counter(
    "converge_watch_events_total",
    "Watch events received, by kind and event type",
    ["kind", "type"],
)

WATCH_RESTARTS = Counter(
    "converge_watch_restarts_total",
    "Full list+watch restarts after a watch stream ended",
    ["kind"],
)

PENDING_OPERATIONS = Gauge(
    "converge_pending_operations",
    "Operations enqueued but not yet settled",
    ["kind"],
)
