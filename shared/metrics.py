"""
Shared metrics configuration for the Mirror service.
"""

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest
from typing import Dict, Any, Optional
import threading


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns its registry so several services (or tests) can coexist
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()
        self._setup_mirror_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

    def _setup_mirror_metrics(self):
        """Set up metrics for the mirrored collection."""
        self._metrics["remote_calls_total"] = Counter(
            "remote_calls_total",
            "Remote collection calls by outcome",
            ["method", "outcome"],
            registry=self.registry
        )

        self._metrics["snapshot_emissions_total"] = Counter(
            "snapshot_emissions_total",
            "Snapshots published to subscribers",
            registry=self.registry
        )

        self._metrics["snapshot_size"] = Gauge(
            "snapshot_size",
            "Number of items in the current snapshot",
            registry=self.registry
        )

        self._metrics["lookups_total"] = Counter(
            "lookups_total",
            "Bounded lookups by outcome",
            ["outcome"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_remote_call(self, method: str, outcome: str):
        self._metrics["remote_calls_total"].labels(method=method, outcome=outcome).inc()

    def record_snapshot(self, size: int):
        """Record one published snapshot."""
        with self._lock:
            self._metrics["snapshot_emissions_total"].inc()
            self._metrics["snapshot_size"].set(size)

    def record_lookup(self, outcome: str):
        self._metrics["lookups_total"].labels(outcome=outcome).inc()

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
