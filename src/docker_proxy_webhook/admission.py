"""AdmissionReview handling for the docker-proxy mutating webhook.

Decodes the pod carried by an ``admission.k8s.io/v1`` AdmissionReview,
rewrites its container images and answers with a JSON patch covering only
the fields that changed.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any

import kubernetes.client
from kubernetes.client import V1LocalObjectReference, V1Pod

from .models import ADMISSION_API_VERSION, ContainerImage, ContainerSet, ContainerType, FailureReason, RewritePolicy
from .rewriter import MetricsSink, PodRewriteException, rewrite_pod

logger = logging.getLogger(__name__)

_PATCH_TYPE = "JSONPatch"

_NOT_REWRITTEN_MESSAGE = "No `image`s rewritten"


class PodDecodeException(Exception):
    """Raised when the admission request object is not a decodable pod."""


class _RawResponse:
    """Carries a JSON document in the shape ``ApiClient.deserialize`` reads."""

    def __init__(self, document: Any) -> None:
        self.data = json.dumps(document)


def _string_field(document: dict[str, Any], key: str) -> str:
    value = document.get(key)
    return value if isinstance(value, str) else ""


def container_set_from_pod(pod: V1Pod) -> ContainerSet:
    """Collect the regular then init container images of ``pod``."""
    containers: list[ContainerImage] = []
    if pod.spec is None:
        return ContainerSet(containers=containers)

    for container_type, pod_containers in (
        (ContainerType.APP, pod.spec.containers),
        (ContainerType.INIT, pod.spec.init_containers),
    ):
        for index, container in enumerate(pod_containers or []):
            containers.append(
                ContainerImage(
                    name=container.name,
                    image=container.image or "",
                    container_type=container_type,
                    index=index,
                )
            )
    return ContainerSet(containers=containers)


class DockerProxyMutatingWebhook:
    """Mutating admission handler that points pod images at registry mirrors.

    Args:
        policy: The rewrite policy loaded at startup.
        pull_secret: Pull secret attached to rewritten pods; empty disables it.
        metrics: Optional telemetry sink.
    """

    def __init__(self, policy: RewritePolicy, pull_secret: str = "", metrics: MetricsSink | None = None) -> None:
        self.policy = policy
        self.pull_secret = pull_secret
        self.metrics = metrics
        self._api_client = kubernetes.client.ApiClient()

        logger.info(
            f"Pull secret startup configuration: configured={bool(pull_secret)} name={pull_secret or '<none>'}"
        )

    # ------------------------------------------------------------------
    # Decoding / encoding
    # ------------------------------------------------------------------

    def decode_pod(self, document: Any) -> V1Pod:
        """Deserialize the raw request object into a ``V1Pod``.

        Raises:
            PodDecodeException: If ``document`` is missing or not a valid pod.
        """
        if not isinstance(document, dict):
            raise PodDecodeException("request object must be a pod document")
        try:
            return self._api_client.deserialize(_RawResponse(document), "V1Pod")
        except (TypeError, ValueError) as e:
            raise PodDecodeException(f"failed to decode pod: {e}") from e

    def build_patch(self, containers: ContainerSet, original_images: list[str]) -> list[dict[str, Any]]:
        """Build JSON patch operations for every image that differs from ``original_images``."""
        operations: list[dict[str, Any]] = []
        for container, original_image in zip(containers.containers, original_images):
            if container.image == original_image:
                continue
            operations.append({
                "op": "replace",
                "path": f"/spec/{container.container_type.spec_field}/{container.index}/image",
                "value": container.image,
            })

        if containers.image_pull_secrets is not None:
            references = [V1LocalObjectReference(name=name) for name in containers.image_pull_secrets]
            # "add" on an existing member replaces it
            operations.append({
                "op": "add",
                "path": "/spec/imagePullSecrets",
                "value": self._api_client.sanitize_for_serialization(references),
            })
        return operations

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    @staticmethod
    def _review(api_version: str, response: dict[str, Any]) -> dict[str, Any]:
        return {"apiVersion": api_version, "kind": "AdmissionReview", "response": response}

    def _errored(
        self, api_version: str, uid: str, code: int, reason: FailureReason, namespace: str, message: str,
    ) -> dict[str, Any]:
        if self.metrics is not None:
            self.metrics.record_failure(reason, namespace)
        return self._review(api_version, {
            "uid": uid,
            "allowed": False,
            "status": {"code": code, "message": message},
        })

    def _record_result(self, mutated: bool, namespace: str) -> None:
        if self.metrics is not None:
            self.metrics.record_result(mutated, namespace)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def handle(self, review: dict[str, Any]) -> dict[str, Any]:
        """Process an AdmissionReview and return the AdmissionReview reply.

        Args:
            review: The decoded AdmissionReview request body.

        Returns:
            An AdmissionReview whose ``response`` either denies the request
            with an explanatory status, allows it unmodified, or allows it
            with a base64-encoded JSON patch.
        """
        api_version = _string_field(review, "apiVersion") or ADMISSION_API_VERSION
        request = review.get("request")
        if not isinstance(request, dict):
            message = "admission review carries no request"
            logger.error(message)
            return self._errored(api_version, "", 400, FailureReason.DECODE_ERROR, "", message)

        uid = _string_field(request, "uid")
        namespace = _string_field(request, "namespace")
        name = _string_field(request, "name")

        logger.info(f"Mutating pod: namespace={namespace} name={name} uid={uid}")

        resource = request.get("resource")
        if isinstance(resource, dict):
            resource = resource.get("resource")
        else:
            resource = None
        if resource != "pods":
            message = "expect resource to be pods"
            logger.error(f"{message}, got {resource!r}")
            return self._errored(api_version, uid, 500, FailureReason.INVALID_RESOURCE_TYPE, namespace, message)

        try:
            pod = self.decode_pod(request.get("object"))
        except PodDecodeException as e:
            logger.error(f"Failed to decode pod in {namespace}: {e}")
            return self._errored(api_version, uid, 400, FailureReason.DECODE_ERROR, namespace, str(e))

        containers = container_set_from_pod(pod)
        original_images = [container.image for container in containers.containers]

        try:
            result = rewrite_pod(containers, namespace, self.policy, self.pull_secret, self.metrics)
        except PodRewriteException as e:
            logger.error(f"Rejecting pod in {namespace}: container={e.container.name} image={e.image!r} ({e.reason})")
            return self._errored(api_version, uid, 500, FailureReason.REWRITE_FAILED, namespace, str(e))

        if not result.changed_any:
            logger.info(f"No pod images were rewritten: namespace={namespace} name={name}")
            self._record_result(False, namespace)
            return self._review(api_version, {
                "uid": uid,
                "allowed": True,
                "status": {"code": 200, "message": _NOT_REWRITTEN_MESSAGE},
            })

        for container, outcome in zip(containers.containers, result.outcomes):
            if outcome.changed:
                logger.info(
                    f"Rewriting image: {outcome.original_image} -> {outcome.new_image} "
                    f"(namespace={namespace} container={container.name})"
                )
        if containers.image_pull_secrets is not None:
            logger.info(f"Adding pull secret {self.pull_secret} in {namespace}")
        else:
            logger.info(f"No pull secret configured - images rewritten without credentials in {namespace}")

        try:
            patch = base64.b64encode(json.dumps(self.build_patch(containers, original_images)).encode()).decode()
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to encode patch for pod in {namespace}: {e}")
            return self._errored(api_version, uid, 500, FailureReason.MARSHALING_FAILED, namespace, str(e))

        logger.info(f"Pod images were rewritten: namespace={namespace} name={name}")
        self._record_result(True, namespace)
        return self._review(api_version, {
            "uid": uid,
            "allowed": True,
            "patchType": _PATCH_TYPE,
            "patch": patch,
        })
