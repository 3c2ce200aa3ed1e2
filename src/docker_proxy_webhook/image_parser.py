"""Container image reference parser for docker-proxy-webhook.

Normalizes image references following the docker distribution reference
grammar: implicit Docker Hub domains are made explicit, official images gain
the ``library/`` namespace, and the tag and digest are split off.
"""

from __future__ import annotations

import re

from .models import DEFAULT_DOMAIN, ImageReference

_LEGACY_DEFAULT_DOMAIN: str = "index.docker.io"

_OFFICIAL_REPO_PREFIX: str = "library/"

_LOCALHOST: str = "localhost"

_NAME_TOTAL_LENGTH_MAX: int = 255

# ---------------------------------------------------------------------------
# Reference grammar
# ---------------------------------------------------------------------------
_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:[._]|__|[-]+)"
_PATH_COMPONENT = rf"{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*"
_DOMAIN_NAME_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_NAME = rf"{_DOMAIN_NAME_COMPONENT}(?:\.{_DOMAIN_NAME_COMPONENT})*"
_IPV6_ADDRESS = r"\[(?:[a-fA-F0-9:]+)\]"
_HOST = rf"(?:{_DOMAIN_NAME}|{_IPV6_ADDRESS})"
_DOMAIN_AND_PORT = rf"{_HOST}(?::[0-9]+)?"
_TAG = r"[\w][\w.-]{0,127}"
_DIGEST = r"[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*[:][0-9a-fA-F]{32,}"
_NAME = rf"(?:{_DOMAIN_AND_PORT}/)?{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*"

_REFERENCE_RE = re.compile(
    rf"(?P<name>{_NAME})(?::(?P<tag>{_TAG}))?(?:@(?P<digest>{_DIGEST}))?", re.ASCII,
)
_ANCHORED_NAME_RE = re.compile(rf"(?:(?P<domain>{_DOMAIN_AND_PORT})/)?(?P<path>{_PATH_COMPONENT}(?:/{_PATH_COMPONENT})*)")

_SHORT_IDENTIFIER_RE = re.compile(r"[a-f0-9]{6,}")
_FULL_IDENTIFIER_RE = re.compile(r"[a-f0-9]{64}")

# Encoded digest lengths of the algorithms a registry accepts
_DIGEST_ALGORITHMS: dict[str, int] = {
    "sha256": 64,
    "sha384": 96,
    "sha512": 128,
}
_DIGEST_HEX_RE = re.compile(r"[a-f0-9]+")


class ImageReferenceException(ValueError):
    """Raised when an image string violates the reference grammar."""

    def __init__(self, image: str, reason: str) -> None:
        super().__init__(f"invalid image reference {image!r}: {reason}")
        self.image = image
        self.reason = reason


def is_short_identifier(image: str) -> bool:
    """Return whether ``image`` is a bare hex content-hash shorthand.

    Short identifiers carry no registry or path structure and are never
    rewritten.
    """
    return bool(_SHORT_IDENTIFIER_RE.fullmatch(image))


def _split_docker_domain(image: str) -> tuple[str, str]:
    """Split a familiar image name into its domain and repository remainder."""
    first, sep, rest = image.partition("/")
    is_domain = bool(sep) and (
        "." in first or ":" in first or first == _LOCALHOST or first.lower() != first
    )

    if is_domain:
        domain, remainder = first, rest
    else:
        domain, remainder = DEFAULT_DOMAIN, image

    if domain == _LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and "/" not in remainder:
        remainder = _OFFICIAL_REPO_PREFIX + remainder

    return domain, remainder


def _validate_digest(image: str, digest: str) -> None:
    algorithm, _, encoded = digest.partition(":")
    expected_length = _DIGEST_ALGORITHMS.get(algorithm)
    if expected_length is None:
        raise ImageReferenceException(image, f"unsupported digest algorithm {algorithm!r}")
    if len(encoded) != expected_length or not _DIGEST_HEX_RE.fullmatch(encoded):
        raise ImageReferenceException(image, f"invalid {algorithm} digest {encoded!r}")


def parse_image_reference(image: str) -> ImageReference:
    """Parse a container image reference into normalized components.

    Args:
        image: Raw image string from a container spec, e.g. ``nginx:1.25``.

    Returns:
        An :class:`ImageReference` whose domain is explicit and lowercase.

    Raises:
        ImageReferenceException: If ``image`` is not a valid reference.
    """
    if not image:
        raise ImageReferenceException(image, "reference must not be empty")

    if _FULL_IDENTIFIER_RE.fullmatch(image):
        raise ImageReferenceException(image, "cannot specify 64-byte hexadecimal strings")

    domain, remainder = _split_docker_domain(image)

    # Everything after the domain, minus tag and digest, must be lowercase
    repository = remainder.partition(":")[0]
    if repository.lower() != repository:
        raise ImageReferenceException(image, "repository name must be lowercase")

    match = _REFERENCE_RE.fullmatch(f"{domain}/{remainder}")
    if match is None:
        raise ImageReferenceException(image, "invalid reference format")

    name = match.group("name")
    if len(name) > _NAME_TOTAL_LENGTH_MAX:
        raise ImageReferenceException(image, f"repository name must not be more than {_NAME_TOTAL_LENGTH_MAX} characters")

    name_match = _ANCHORED_NAME_RE.fullmatch(name)
    if name_match is None or name_match.group("domain") is None:
        raise ImageReferenceException(image, "invalid reference format")

    digest = match.group("digest")
    if digest is not None:
        _validate_digest(image, digest)

    return ImageReference(
        domain=name_match.group("domain").lower(),
        path=name_match.group("path"),
        tag=match.group("tag"),
        digest=digest,
    )
