"""
Prometheus metrics for the Authorization Service.
"""

from typing import Dict, Any, Optional

from prometheus_client import Counter, Gauge, Histogram, Info, CollectorRegistry, REGISTRY


# Access checks finish in well under a millisecond
DECISION_BUCKETS = (0.00005, 0.0001, 0.00025, 0.0005, 0.001, 0.0025, 0.005, 0.01, 0.05, 0.1)


class MetricsCollector:
    """Metrics for one service, registered on ``registry`` (the global one by default)."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_http_metrics()
        self._setup_authorization_metrics()

    def _setup_http_metrics(self):
        self._metrics["service_info"] = Info(
            "service", "Service information", registry=self.registry
        )
        self._metrics["service_info"].info({"service": self.service_name, "version": "1.0.0"})

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
            "health_check_total", "Total health check requests", ["status"], registry=self.registry
        )
        self._metrics["errors_total"] = Counter(
            "errors_total", "Total errors", ["error_type", "service"], registry=self.registry
        )

    def _setup_authorization_metrics(self):
        """Set up authorization-specific metrics."""
        self._metrics["authorization_checks_total"] = Counter(
            "authorization_checks_total",
            "Access checks by decision",
            ["decision"],
            registry=self.registry
        )
        self._metrics["authorization_check_duration_seconds"] = Histogram(
            "authorization_check_duration_seconds",
            "Time spent evaluating one access check",
            buckets=DECISION_BUCKETS,
            registry=self.registry
        )
        self._metrics["authorization_rules_added_total"] = Counter(
            "authorization_rules_added_total",
            "Rules committed to the rule set",
            ["ptype"],
            registry=self.registry
        )
        self._metrics["authorization_rules_loaded"] = Gauge(
            "authorization_rules_loaded",
            "Rules in the published rule model",
            ["ptype"],
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
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str):
        self._metrics["errors_total"].labels(error_type=error_type, service=self.service_name).inc()

    def record_decision(self, allowed: bool, duration: Optional[float] = None):
        """Record the outcome of an access check."""
        decision = "allow" if allowed else "deny"
        self._metrics["authorization_checks_total"].labels(decision=decision).inc()
        if duration is not None:
            self._metrics["authorization_check_duration_seconds"].observe(duration)

    def record_rules_added(self, ptype: str, count: int):
        if count:
            self._metrics["authorization_rules_added_total"].labels(ptype=ptype).inc(count)

    def set_rules_loaded(self, policies: int, grouping_rules: int):
        """Track the size of the published rule model."""
        self._metrics["authorization_rules_loaded"].labels(ptype="p").set(policies)
        self._metrics["authorization_rules_loaded"].labels(ptype="g").set(grouping_rules)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
