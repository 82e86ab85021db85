"""
Shared metrics configuration for the entitlement engine.
"""

from typing import Dict, Any, Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns its registry so several service instances (tests,
    workers) can coexist in one process without duplicate registration.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
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

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_entitlements_metrics()

    def _setup_entitlements_metrics(self):
        """Set up entitlement-resolution metrics."""
        self._metrics["entitlement_resolutions_total"] = Counter(
            "entitlement_resolutions_total",
            "Total entitlement resolutions by source and resolved access type",
            ["source", "access_type"],
            registry=self.registry
        )

        self._metrics["entitlement_resolution_duration_seconds"] = Histogram(
            "entitlement_resolution_duration_seconds",
            "Entitlement resolution duration in seconds",
            registry=self.registry
        )

        self._metrics["authority_requests_total"] = Counter(
            "authority_requests_total",
            "Total entitlement authority requests",
            ["operation", "outcome"],
            registry=self.registry
        )

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

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_resolution(self, source: str, access_type: str, duration: float):
        """Record one completed entitlement resolution."""
        self._metrics["entitlement_resolutions_total"].labels(
            source=source,
            access_type=access_type
        ).inc()
        self._metrics["entitlement_resolution_duration_seconds"].observe(duration)

    def record_authority_request(self, operation: str, outcome: str):
        """Record an authority call outcome (ok, rejected, unavailable)."""
        self._metrics["authority_requests_total"].labels(operation=operation, outcome=outcome).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
