"""Image rewriting for docker-proxy-webhook.

Combines the parser, the policy evaluator and the rebuilder into per-image
and per-pod operations.  Nothing here logs or talks to Prometheus directly;
callers that want telemetry pass a :class:`MetricsSink`.
"""

from __future__ import annotations

from typing import Protocol

from .image_parser import ImageReferenceException, is_short_identifier, parse_image_reference
from .models import (
    ContainerImage,
    ContainerSet,
    FailureReason,
    ImageReference,
    PodRewriteResult,
    RewriteClassification,
    RewriteOutcome,
    RewritePolicy,
)
from .policy import evaluate_domain

# Classifications whose output is rebuilt from the parsed reference
_REBUILT_CLASSIFICATIONS: frozenset[RewriteClassification] = frozenset({
    RewriteClassification.MAPPED,
    RewriteClassification.IGNORED,
})


class PodRewriteException(Exception):
    """Raised when any container image of a pod cannot be rewritten.

    The container set is left untouched when this is raised.
    """

    def __init__(self, container: ContainerImage, cause: ImageReferenceException) -> None:
        super().__init__(f"unable to rewrite image of container {container.name!r}: {cause}")
        self.container = container
        self.image = cause.image
        self.reason = cause.reason


class MetricsSink(Protocol):
    """Receiver for rewrite telemetry, injected by the transport layer."""

    def record_container(self, outcome: RewriteOutcome, namespace: str) -> None: ...

    def record_result(self, mutated: bool, namespace: str) -> None: ...

    def record_failure(self, reason: FailureReason, namespace: str) -> None: ...


def rebuild_image(target_domain: str, ref: ImageReference) -> str:
    """Reassemble ``target_domain``, path, tag and digest into an image string."""
    image = f"{target_domain}/{ref.path}"
    if ref.tag is not None:
        image += f":{ref.tag}"
    if ref.digest is not None:
        image += f"@{ref.digest}"
    return image


def evaluate_image(image: str, policy: RewritePolicy) -> RewriteOutcome:
    """Work out what ``image`` becomes under ``policy`` without side effects.

    Raises:
        ImageReferenceException: If ``image`` is not a valid reference.
    """
    if is_short_identifier(image):
        return RewriteOutcome(
            original_image=image,
            new_image=image,
            classification=RewriteClassification.SHORT_IDENTIFIER,
        )

    ref = parse_image_reference(image)
    target_domain, classification = evaluate_domain(ref.domain, policy)

    new_image = image
    if classification in _REBUILT_CLASSIFICATIONS:
        new_image = rebuild_image(target_domain, ref)

    return RewriteOutcome(
        original_image=image,
        new_image=new_image,
        classification=classification,
        domain=ref.domain,
    )


def rewrite_image(image: str, namespace: str, policy: RewritePolicy, metrics: MetricsSink | None = None) -> str:
    """Return the image reference ``image`` should be pulled from.

    Args:
        image: Image string from a container spec.
        namespace: Namespace of the request, used only for telemetry.
        policy: The active rewrite policy.
        metrics: Optional telemetry sink.

    Raises:
        ImageReferenceException: If ``image`` is not a valid reference.
    """
    outcome = evaluate_image(image, policy)
    if metrics is not None:
        metrics.record_container(outcome, namespace)
    return outcome.new_image


def rewrite_pod(
    containers: ContainerSet,
    namespace: str,
    policy: RewritePolicy,
    pull_secret_name: str | None = None,
    metrics: MetricsSink | None = None,
) -> PodRewriteResult:
    """Rewrite every container image of a pod in place.

    All images are evaluated before any is replaced, so a parse failure
    leaves ``containers`` exactly as it was.  When at least one image changed
    and ``pull_secret_name`` is set, the pull secret list is replaced by that
    single name.

    Args:
        containers: Regular and init containers of the pod; mutated in place.
        namespace: Namespace of the request, used only for telemetry.
        policy: The active rewrite policy.
        pull_secret_name: Pull secret to attach when an image changed.
        metrics: Optional telemetry sink.

    Returns:
        :class:`PodRewriteResult` with ``changed_any`` and per-container outcomes.

    Raises:
        PodRewriteException: If any container image is not a valid reference.
    """
    outcomes: list[RewriteOutcome] = []
    for container in containers.containers:
        try:
            outcomes.append(evaluate_image(container.image, policy))
        except ImageReferenceException as e:
            raise PodRewriteException(container, e) from e

    changed_any = False
    for container, outcome in zip(containers.containers, outcomes):
        if metrics is not None:
            metrics.record_container(outcome, namespace)
        if outcome.changed:
            container.image = outcome.new_image
            changed_any = True

    if changed_any and pull_secret_name:
        containers.image_pull_secrets = [pull_secret_name]

    return PodRewriteResult(changed_any=changed_any, outcomes=outcomes)
