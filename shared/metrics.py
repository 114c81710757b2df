"""
Shared metrics configuration for the notification pipeline.
"""

from typing import Dict, Any, Optional
import threading

from prometheus_client import Counter, Histogram, Info, CollectorRegistry


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        # Service info
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

        # Error metrics
        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_pipeline_metrics()

    def _setup_pipeline_metrics(self):
        """Set up producer, limiter and consumer metrics."""
        self._metrics["events_published_total"] = Counter(
            "events_published_total",
            "Total events published",
            ["topic"],
            registry=self.registry
        )

        self._metrics["publish_failures_total"] = Counter(
            "publish_failures_total",
            "Total failed publish attempts",
            ["topic"],
            registry=self.registry
        )

        self._metrics["admission_decisions_total"] = Counter(
            "admission_decisions_total",
            "Rate limiter decisions",
            ["decision"],
            registry=self.registry
        )

        self._metrics["limiter_unavailable_total"] = Counter(
            "limiter_unavailable_total",
            "Rate limiter checks that failed closed",
            registry=self.registry
        )

        self._metrics["dead_lettered_total"] = Counter(
            "dead_lettered_total",
            "Messages redirected to the dead-letter topic",
            ["reason"],
            registry=self.registry
        )

        self._metrics["notifications_delivered_total"] = Counter(
            "notifications_delivered_total",
            "Notifications handed to the delivery provider",
            registry=self.registry
        )

        self._metrics["messages_acknowledged_total"] = Counter(
            "messages_acknowledged_total",
            "Offsets committed after processing",
            ["group"],
            registry=self.registry
        )

        self._metrics["redeliveries_total"] = Counter(
            "redeliveries_total",
            "Messages left unacknowledged for redelivery",
            ["group"],
            registry=self.registry
        )

        self._metrics["dead_letter_observed_total"] = Counter(
            "dead_letter_observed_total",
            "Dead-letter records observed",
            ["reason"],
            registry=self.registry
        )

        self._metrics["delivery_duration_seconds"] = Histogram(
            "delivery_duration_seconds",
            "Downstream delivery duration in seconds",
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

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def increment_counter(self, metric_name: str, **labels):
        """Increment a counter metric."""
        metric = self._metrics.get(metric_name)
        if metric is None:
            return
        with self._lock:
            if labels:
                metric.labels(**labels).inc()
            else:
                metric.inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
