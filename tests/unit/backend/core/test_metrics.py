"""Unit tests for the metrics collectors."""

from types import SimpleNamespace
from unittest.mock import patch

from prometheus_client import CollectorRegistry

from storefront.backend.core import metrics as metrics_module
from storefront.backend.core.metrics import (
    NullMetrics,
    PrometheusMetrics,
    create_metrics,
    get_metrics,
)


def _config(enabled: bool, flag: bool) -> SimpleNamespace:
    return SimpleNamespace(
        observability=SimpleNamespace(
            metrics=SimpleNamespace(enabled=enabled, namespace="storefront"),
        ),
        features=SimpleNamespace(observability_metrics_enabled=flag),
    )


class TestPrometheusMetrics:
    def test_counter_with_labels(self):
        registry = CollectorRegistry()
        metrics = PrometheusMetrics("storefront", registry)

        metrics.increment("poll_requests_total", mode="long")
        metrics.increment("poll_requests_total", mode="long")
        metrics.increment("poll_requests_total", mode="short")

        assert registry.get_sample_value(
            "storefront_poll_requests_total", {"mode": "long"},
        ) == 2
        assert registry.get_sample_value(
            "storefront_poll_requests_total", {"mode": "short"},
        ) == 1

    def test_counter_amount(self):
        registry = CollectorRegistry()
        metrics = PrometheusMetrics("storefront", registry)

        metrics.increment("poll_events_returned_total", amount=7)

        assert registry.get_sample_value("storefront_poll_events_returned_total") == 7

    def test_gauge_set(self):
        registry = CollectorRegistry()
        metrics = PrometheusMetrics("storefront", registry)

        metrics.set_gauge("email_queue_depth", 12)
        metrics.set_gauge("email_queue_depth", 3)

        assert registry.get_sample_value("storefront_email_queue_depth") == 3

    def test_render_exposition(self):
        metrics = PrometheusMetrics("storefront")
        metrics.increment("email_jobs_total", outcome="sent")

        payload, content_type = metrics.render()

        assert b"storefront_email_jobs_total" in payload
        assert content_type.startswith("text/plain")

    def test_separate_instances_do_not_collide(self):
        PrometheusMetrics("storefront").increment("poll_timeouts_total")
        PrometheusMetrics("storefront").increment("poll_timeouts_total")


class TestNullMetrics:
    def test_accepts_everything(self):
        metrics = NullMetrics()
        assert metrics.increment("anything", mode="x") is None
        assert metrics.set_gauge("anything", 1.0) is None


class TestCreateMetrics:
    def test_enabled(self):
        with patch(
            "storefront.backend.core.config.get_app_config", return_value=_config(True, True),
        ):
            assert isinstance(create_metrics(), PrometheusMetrics)

    def test_disabled_by_feature_flag(self):
        with patch(
            "storefront.backend.core.config.get_app_config", return_value=_config(True, False),
        ):
            assert isinstance(create_metrics(), NullMetrics)

    def test_disabled_in_observability_config(self):
        with patch(
            "storefront.backend.core.config.get_app_config", return_value=_config(False, True),
        ):
            assert isinstance(create_metrics(), NullMetrics)


class TestSharedCollector:
    def test_get_metrics_is_cached(self):
        assert get_metrics() is get_metrics()

    def test_created_on_first_use(self):
        assert metrics_module._metrics is None

        collector = get_metrics()

        assert metrics_module._metrics is collector
