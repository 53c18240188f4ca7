"""Prometheus metrics."""

from prometheus_client import Counter, Gauge, Histogram

# Route lifecycle metrics
route_transitions = Counter(
    "cdn_broker_route_transitions_total",
    "Route state transitions",
    ["from_state", "to_state"],
)

routes_in_flight = Gauge(
    "cdn_broker_routes_in_flight",
    "Routes in an actively changing state at the last sweep",
)

# Sweep metrics
sweep_duration = Histogram(
    "cdn_broker_sweep_duration_seconds",
    "Sweep duration",
    ["sweep"],
)

sweep_errors = Counter(
    "cdn_broker_sweep_errors_total",
    "Per-route or per-certificate errors during a sweep",
    ["sweep"],
)

orphaned_certificates_deleted = Counter(
    "cdn_broker_orphaned_certificates_deleted_total",
    "Orphaned certificates deleted",
)

# Broker API metrics
broker_requests = Counter(
    "cdn_broker_broker_requests_total",
    "Service broker requests",
    ["operation", "status"],
)


def _state_label(state) -> str:
    return getattr(state, "value", state) or "none"


def record_transition(from_state, to_state) -> None:
    """Count a route state transition."""
    if from_state == to_state:
        return
    route_transitions.labels(
        from_state=_state_label(from_state), to_state=_state_label(to_state)
    ).inc()
