"""
Shared metrics configuration for the portfolio cache layer.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several services (or tests) can create
    collectors in one process without clashing on metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

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

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._setup_cache_metrics()

    def _setup_cache_metrics(self):
        """Set up cache and freshness metrics."""
        self._metrics["cache_operations_total"] = Counter(
            "cache_operations_total",
            "Total cache store operations",
            ["operation", "backend", "result"],
            registry=self.registry
        )

        self._metrics["cache_backend_available"] = Gauge(
            "cache_backend_available",
            "Whether the networked cache backend is reachable (1) or not (0)",
            registry=self.registry
        )

        self._metrics["conditional_requests_total"] = Counter(
            "conditional_requests_total",
            "Conditional request outcomes per endpoint class",
            ["endpoint_class", "result"],
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

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

    def record_cache_operation(self, operation: str, backend: str, result: str):
        """Record the outcome of a cache store operation."""
        self._metrics["cache_operations_total"].labels(
            operation=operation,
            backend=backend,
            result=result
        ).inc()

    def set_cache_availability(self, available: bool):
        """Publish the networked backend availability flag."""
        with self._lock:
            self._metrics["cache_backend_available"].set(1 if available else 0)

    def record_conditional_request(self, endpoint_class: str, result: str):
        """Record whether a conditional request was answered with 304."""
        self._metrics["conditional_requests_total"].labels(
            endpoint_class=endpoint_class,
            result=result
        ).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
