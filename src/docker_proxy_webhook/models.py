"""Data models for docker-proxy-webhook image rewriting."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

# ---------------------------------------------------------------------------
# Constants — defaults shared by the CLI, server and admission modules
# ---------------------------------------------------------------------------
DEFAULT_CONFIG_PATH: str = "/tmp/config/docker-proxy-config.yaml"  # noqa: S108

DEFAULT_LISTEN_PORT: int = 9443  # Port the /mutate endpoint binds to.

DEFAULT_METRICS_ADDR: str = ":8080"

DEFAULT_HEALTH_ADDR: str = ":8081"

DEFAULT_DOMAIN: str = "docker.io"  # Registry assumed for references without an explicit domain.

ADMISSION_API_VERSION: str = "admission.k8s.io/v1"


class RewriteClassification(str, Enum):
    """How the policy treated the registry domain of a single container image."""

    MAPPED = "mapped"
    IGNORED = "ignored"
    UNKNOWN = "unknown"
    SHORT_IDENTIFIER = "short-identifier"
    PASSTHROUGH_ALREADY_MIRRORED = "passthrough-already-mirrored"


class ContainerType(str, Enum):
    """Classification of a container within a pod spec."""

    INIT = "init"
    APP = "app"

    @property
    def spec_field(self) -> str:
        """Return the camelCase pod spec field holding containers of this type."""
        return "initContainers" if self is ContainerType.INIT else "containers"


class FailureReason(str, Enum):
    """Reasons a webhook invocation can fail, used as metric label values."""

    INVALID_RESOURCE_TYPE = "invalid_resource_type"
    DECODE_ERROR = "decode_error"
    REWRITE_FAILED = "rewrite_failed"
    MARSHALING_FAILED = "marshaling_failed"


@dataclass(frozen=True)
class ImageReference:
    """Parsed and normalized container image reference.

    ``domain`` and ``path`` are always set; ``tag`` and ``digest`` are
    independent of each other and reflect what the original string carried.
    """

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None


@dataclass(frozen=True)
class RewritePolicy:
    """Immutable rewrite configuration shared by every request.

    Attributes:
        domain_map: Source registry domain to mirror domain substitutions.
        ignore_list: Domains that are never rewritten.
    """

    domain_map: Mapping[str, str]
    ignore_list: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        # Freeze the caller's dict so the policy can be shared without locks
        object.__setattr__(self, "domain_map", MappingProxyType(dict(self.domain_map)))
        object.__setattr__(self, "ignore_list", frozenset(self.ignore_list))

    @property
    def mirror_domains(self) -> frozenset[str]:
        """Domains that are already mirror targets."""
        return frozenset(self.domain_map.values())

    @property
    def overlapping_domains(self) -> frozenset[str]:
        """Domains listed both as a ``domain_map`` key and in ``ignore_list``."""
        return self.ignore_list & frozenset(self.domain_map)


@dataclass(frozen=True)
class RewriteOutcome:
    """Result of evaluating one container image against the policy."""

    original_image: str
    new_image: str
    classification: RewriteClassification
    domain: str | None = None

    @property
    def changed(self) -> bool:
        return self.new_image != self.original_image


@dataclass
class ContainerImage:
    """A container image slot in a pod spec.

    ``index`` is the position within the ``containers`` or ``initContainers``
    list selected by ``container_type``.
    """

    name: str
    image: str
    container_type: ContainerType = ContainerType.APP
    index: int = 0


@dataclass
class ContainerSet:
    """The rewritable part of a pod: its container images and pull secret slot.

    ``containers`` holds regular containers followed by init containers.
    ``image_pull_secrets`` stays ``None`` unless the rewrite attaches one.
    """

    containers: list[ContainerImage] = field(default_factory=list)
    image_pull_secrets: list[str] | None = None


@dataclass
class PodRewriteResult:
    """Aggregate verdict of :func:`~docker_proxy_webhook.rewriter.rewrite_pod`."""

    changed_any: bool = False
    outcomes: list[RewriteOutcome] = field(default_factory=list)
