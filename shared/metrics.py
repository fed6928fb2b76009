"""
Shared metrics configuration for the Contacts Service.
"""

from typing import Dict, Any, Optional
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Each collector owns a registry so several services can coexist in one process
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
        self._metrics["service_info"] = Info(
            "service",
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
            ["method", "route", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "route", "status_code"],
            buckets=(0.1, 0.5, 1, 2, 5),
            registry=self.registry
        )

        self._metrics["http_request_errors_total"] = Counter(
            "http_request_errors_total",
            "Total HTTP request errors",
            ["method", "route", "error_type"],
            registry=self.registry
        )

        # Health check metrics
        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_contacts_metrics()

    def _setup_contacts_metrics(self):
        """Set up storage, cache and idempotency metrics."""
        self._metrics["db_query_duration_seconds"] = Histogram(
            "db_query_duration_seconds",
            "Duration of database queries in seconds",
            ["operation", "model"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1, 2),
            registry=self.registry
        )

        self._metrics["db_query_errors_total"] = Counter(
            "db_query_errors_total",
            "Total database query errors",
            ["operation", "model"],
            registry=self.registry
        )

        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["key_prefix"],
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["key_prefix"],
            registry=self.registry
        )

        self._metrics["idempotent_replays_total"] = Counter(
            "idempotent_replays_total",
            "Mutations answered from the idempotency ledger",
            ["operation"],
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, route: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        status = str(status_code)
        self._metrics["http_requests_total"].labels(
            method=method,
            route=route,
            status_code=status
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            route=route,
            status_code=status
        ).observe(duration)

        if status_code >= 400:
            error_type = "server_error" if status_code >= 500 else "client_error"
            self._metrics["http_request_errors_total"].labels(
                method=method,
                route=route,
                error_type=error_type
            ).inc()

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_cache_access(self, key_prefix: str, hit: bool):
        """Record a cache hit or miss."""
        metric = "cache_hits_total" if hit else "cache_misses_total"
        self._metrics[metric].labels(key_prefix=key_prefix).inc()

    @contextmanager
    def time_db_query(self, operation: str, model: str = "Contact"):
        """Time a storage operation, counting it as an error if it raises."""
        start_time = time.time()
        try:
            yield
        except Exception:
            self._metrics["db_query_errors_total"].labels(operation=operation, model=model).inc()
            raise
        finally:
            duration = time.time() - start_time
            self._metrics["db_query_duration_seconds"].labels(
                operation=operation,
                model=model
            ).observe(duration)

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        if metric_name in self._metrics:
            self._metrics[metric_name].labels(**labels).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
