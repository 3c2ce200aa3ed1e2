"""Unit tests for the Prometheus metrics sink."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

from docker_proxy_webhook.metrics import PrometheusMetricsSink
from docker_proxy_webhook.models import FailureReason, RewriteClassification, RewriteOutcome


def _outcome(classification: RewriteClassification, domain: str | None = "docker.io") -> RewriteOutcome:
    return RewriteOutcome(
        original_image="nginx",
        new_image="mirror.example.com/library/nginx",
        classification=classification,
        domain=domain,
    )


class TestPrometheusMetricsSink:
    """Tests for ``PrometheusMetricsSink`` counters."""

    def test_mapped_counts_as_rewrite(
        self, metrics_sink: PrometheusMetricsSink, metrics_registry: CollectorRegistry,
    ) -> None:
        """Verify mapped images increment the rewrite and classification counters."""
        metrics_sink.record_container(_outcome(RewriteClassification.MAPPED), "team-a")

        labels = {"domain": "docker.io", "request_namespace": "team-a"}
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_container_rewrites_total", labels,
        ) == 1.0
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_container_images_total", {**labels, "classification": "mapped"},
        ) == 1.0
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_unknown_domain_total", labels,
        ) is None

    def test_unknown_counts_separately(
        self, metrics_sink: PrometheusMetricsSink, metrics_registry: CollectorRegistry,
    ) -> None:
        """Verify unknown domains use their own counter."""
        metrics_sink.record_container(_outcome(RewriteClassification.UNKNOWN, "ghcr.io"), "team-a")
        metrics_sink.record_container(_outcome(RewriteClassification.UNKNOWN, "ghcr.io"), "team-a")

        labels = {"domain": "ghcr.io", "request_namespace": "team-a"}
        assert metrics_registry.get_sample_value("docker_proxy_mutating_webhook_unknown_domain_total", labels) == 2.0
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_container_rewrites_total", labels,
        ) is None

    def test_short_identifier_has_empty_domain(
        self, metrics_sink: PrometheusMetricsSink, metrics_registry: CollectorRegistry,
    ) -> None:
        """Verify short identifiers are counted under an empty domain label."""
        metrics_sink.record_container(_outcome(RewriteClassification.SHORT_IDENTIFIER, None), "team-a")

        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_container_images_total",
            {"classification": "short-identifier", "domain": "", "request_namespace": "team-a"},
        ) == 1.0

    def test_result_and_failure(
        self, metrics_sink: PrometheusMetricsSink, metrics_registry: CollectorRegistry,
    ) -> None:
        """Verify request-level result and failure counters."""
        metrics_sink.record_result(True, "team-a")
        metrics_sink.record_result(False, "team-a")
        metrics_sink.record_failure(FailureReason.DECODE_ERROR, "team-b")

        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_result_total", {"mutated": "true", "request_namespace": "team-a"},
        ) == 1.0
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_result_total", {"mutated": "false", "request_namespace": "team-a"},
        ) == 1.0
        assert metrics_registry.get_sample_value(
            "docker_proxy_mutating_webhook_failures_total",
            {"failure_reason": "decode_error", "request_namespace": "team-b"},
        ) == 1.0
