"""Prometheus metrics for document dispatch."""

from prometheus_client import Counter, Histogram

from docuhealth.dispatch.dispatcher import DispatchMetrics

# Dispatch metrics
dispatch_latency_ms = Histogram(
    "dispatch_latency_ms",
    "Document dispatch latency in milliseconds",
    ["mode", "status"],
    buckets=[50, 100, 250, 500, 1000, 2500, 5000, 15000, 60000, 300000, 900000],
)

dispatch_outcomes_total = Counter(
    "dispatch_outcomes_total",
    "Total dispatch outcomes",
    ["mode", "status"],
)

dispatch_errors_total = Counter(
    "dispatch_errors_total",
    "Total dispatch errors",
    ["kind"],
)

validation_tickets_total = Counter(
    "validation_tickets_total",
    "Total validation tickets raised",
    ["priority"],
)


class PrometheusDispatchMetrics(DispatchMetrics):
    """Prometheus-based dispatch metrics implementation."""

    def record_dispatch(self, mode: str, status: str, latency_ms: float) -> None:
        """Record dispatch latency and outcome."""
        dispatch_latency_ms.labels(mode=mode, status=status).observe(latency_ms)
        dispatch_outcomes_total.labels(mode=mode, status=status).inc()

    def inc_error(self, kind: str) -> None:
        """Increment error counter."""
        dispatch_errors_total.labels(kind=kind).inc()

    def inc_ticket(self, priority: str) -> None:
        """Increment validation ticket counter."""
        validation_tickets_total.labels(priority=priority).inc()
