"""Shared pytest fixtures for the docker-proxy-webhook test suite."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from docker_proxy_webhook.metrics import PrometheusMetricsSink
from docker_proxy_webhook.models import RewritePolicy


@pytest.fixture()
def policy() -> RewritePolicy:
    """Return a policy mapping Docker Hub and GCR to mirrors and ignoring Quay.

    Returns:
        A ``RewritePolicy`` with two mapped domains and one ignored domain.
    """
    return RewritePolicy(
        domain_map={
            "docker.io": "mirror.example.com",
            "gcr.io": "gcr-mirror.example.com",
        },
        ignore_list=frozenset({"quay.io"}),
    )


@pytest.fixture()
def metrics_registry() -> CollectorRegistry:
    """Return an isolated Prometheus registry."""
    return CollectorRegistry()


@pytest.fixture()
def metrics_sink(metrics_registry: CollectorRegistry) -> PrometheusMetricsSink:
    """Return a metrics sink bound to the isolated registry."""
    return PrometheusMetricsSink(registry=metrics_registry)


@pytest.fixture()
def pod_document() -> Callable[..., dict[str, Any]]:
    """Return a factory building raw pod documents as the API server sends them.

    Returns:
        Callable taking ``images`` and optional ``init_images``/``pull_secrets``.
    """

    def _build(
        images: list[str],
        init_images: list[str] | None = None,
        pull_secrets: list[str] | None = None,
    ) -> dict[str, Any]:
        spec: dict[str, Any] = {
            "containers": [{"name": f"app-{i}", "image": image} for i, image in enumerate(images)],
        }
        if init_images is not None:
            spec["initContainers"] = [{"name": f"init-{i}", "image": image} for i, image in enumerate(init_images)]
        if pull_secrets is not None:
            spec["imagePullSecrets"] = [{"name": name} for name in pull_secrets]
        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {"name": "web", "namespace": "team-a", "labels": {"app": "web"}},
            "spec": spec,
        }

    return _build


@pytest.fixture()
def admission_review() -> Callable[..., dict[str, Any]]:
    """Return a factory wrapping an object into an AdmissionReview request."""

    def _build(obj: Any, resource: str = "pods", namespace: str = "team-a") -> dict[str, Any]:
        return {
            "apiVersion": "admission.k8s.io/v1",
            "kind": "AdmissionReview",
            "request": {
                "uid": "705ab4f5-6393-11e8-b7cc-42010a800002",
                "kind": {"group": "", "version": "v1", "kind": "Pod"},
                "resource": {"group": "", "version": "v1", "resource": resource},
                "namespace": namespace,
                "name": "web",
                "operation": "CREATE",
                "object": obj,
            },
        }

    return _build
