"""
Metrics Collection.

Counter/gauge abstraction injected into the components that report metrics
(request middleware, poll endpoints, email worker). Nothing in the
application holds process-wide counters of its own; it asks for a
collector and records through it.

Implementations:
    PrometheusMetrics - prometheus_client metrics on a private registry
    NullMetrics       - discards everything (metrics disabled, unit tests)

Usage:
    from storefront.backend.core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment("poll_requests_total", endpoint="admin")
    metrics.set_gauge("email_queue_depth", 12)
"""

from threading import Lock
from typing import Protocol

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    generate_latest,
)

from storefront.backend.core.logging import get_logger

logger = get_logger(__name__)


class MetricsCollector(Protocol):
    """Minimal counter/gauge interface used across the backend."""

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None: ...

    def set_gauge(self, name: str, value: float, **labels: str) -> None: ...


class NullMetrics:
    """Collector that records nothing."""

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None:
        return None

    def set_gauge(self, name: str, value: float, **labels: str) -> None:
        return None


class PrometheusMetrics:
    """
    Collector backed by prometheus_client.

    Metrics are created lazily the first time a name is used, with the label
    names of that first call. A private CollectorRegistry keeps repeated app
    construction (tests, reloads) from colliding on the global registry.
    """

    def __init__(self, namespace: str, registry: CollectorRegistry | None = None) -> None:
        self.namespace = namespace
        self.registry = registry or CollectorRegistry()
        self._counters: dict[str, Counter] = {}
        self._gauges: dict[str, Gauge] = {}
        self._lock = Lock()

    def increment(self, name: str, amount: float = 1.0, **labels: str) -> None:
        counter = self._counter(name, tuple(sorted(labels)))
        if labels:
            counter.labels(**labels).inc(amount)
        else:
            counter.inc(amount)

    def set_gauge(self, name: str, value: float, **labels: str) -> None:
        gauge = self._gauge(name, tuple(sorted(labels)))
        if labels:
            gauge.labels(**labels).set(value)
        else:
            gauge.set(value)

    def render(self) -> tuple[bytes, str]:
        """Return the exposition payload and its content type."""
        return generate_latest(self.registry), CONTENT_TYPE_LATEST

    def _counter(self, name: str, label_names: tuple[str, ...]) -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter(
                    name,
                    name.replace("_", " "),
                    label_names,
                    namespace=self.namespace,
                    registry=self.registry,
                )
            return self._counters[name]

    def _gauge(self, name: str, label_names: tuple[str, ...]) -> Gauge:
        with self._lock:
            if name not in self._gauges:
                self._gauges[name] = Gauge(
                    name,
                    name.replace("_", " "),
                    label_names,
                    namespace=self.namespace,
                    registry=self.registry,
                )
            return self._gauges[name]


_metrics: MetricsCollector | None = None


def create_metrics() -> MetricsCollector:
    """Build the collector selected by observability.yaml and features.yaml."""
    from storefront.backend.core.config import get_app_config

    app_config = get_app_config()
    metrics_config = app_config.observability.metrics
    if metrics_config.enabled and app_config.features.observability_metrics_enabled:
        logger.info("Prometheus metrics enabled", extra={"namespace": metrics_config.namespace})
        return PrometheusMetrics(metrics_config.namespace)
    return NullMetrics()


def get_metrics() -> MetricsCollector:
    """Get the shared metrics collector (lazy initialization)."""
    global _metrics
    if _metrics is None:
        _metrics = create_metrics()
    return _metrics
