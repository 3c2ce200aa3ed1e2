"""Prometheus counters for the mutating webhook."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter

from .models import FailureReason, RewriteClassification, RewriteOutcome

_METRIC_PREFIX = "docker_proxy_mutating_webhook"

# Classifications counted as a container rewrite, matching the unknown-domain split
_REWRITE_CLASSIFICATIONS: frozenset[RewriteClassification] = frozenset({
    RewriteClassification.MAPPED,
    RewriteClassification.IGNORED,
})


class PrometheusMetricsSink:
    """Records webhook telemetry as Prometheus counters.

    Args:
        registry: Registry the counters are registered with.  Tests pass a
            fresh ``CollectorRegistry`` to keep counts isolated.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.result_counter = Counter(
            f"{_METRIC_PREFIX}_result",
            "Number of webhook invocations",
            ["mutated", "request_namespace"],
            registry=registry,
        )
        self.failure_counter = Counter(
            f"{_METRIC_PREFIX}_failures",
            "Number of webhook failures",
            ["failure_reason", "request_namespace"],
            registry=registry,
        )
        self.container_rewrite_counter = Counter(
            f"{_METRIC_PREFIX}_container_rewrites",
            "Number of container image values rewritten",
            ["domain", "request_namespace"],
            registry=registry,
        )
        self.unknown_domain_counter = Counter(
            f"{_METRIC_PREFIX}_unknown_domain",
            "Number of unmapped domains",
            ["domain", "request_namespace"],
            registry=registry,
        )
        self.container_image_counter = Counter(
            f"{_METRIC_PREFIX}_container_images",
            "Number of container images evaluated, by classification",
            ["classification", "domain", "request_namespace"],
            registry=registry,
        )

    def record_container(self, outcome: RewriteOutcome, namespace: str) -> None:
        domain = outcome.domain or ""
        self.container_image_counter.labels(outcome.classification.value, domain, namespace).inc()

        if outcome.classification in _REWRITE_CLASSIFICATIONS:
            self.container_rewrite_counter.labels(domain, namespace).inc()
        elif outcome.classification is RewriteClassification.UNKNOWN:
            self.unknown_domain_counter.labels(domain, namespace).inc()

    def record_result(self, mutated: bool, namespace: str) -> None:
        self.result_counter.labels(str(mutated).lower(), namespace).inc()

    def record_failure(self, reason: FailureReason, namespace: str) -> None:
        self.failure_counter.labels(reason.value, namespace).inc()
