"""Rewrite policy loading and domain evaluation.

The policy document is YAML with two keys::

    ignoreList:
      - quay.io
    domainMap:
      docker.io: mirror.example.com

``domainMap`` is required and must not be empty; ``ignoreList`` is optional.
"""

from __future__ import annotations

import logging
import pathlib
from typing import Any

import yaml

from .models import RewriteClassification, RewritePolicy

logger = logging.getLogger(__name__)


class PolicyConfigException(Exception):
    """Raised when the policy document is missing or malformed."""


def _normalize_domain(value: Any, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise PolicyConfigException(f"{location} must be a non-empty string, got {value!r}")
    return value.strip().lower()


def _parse_domain_map(raw: Any) -> dict[str, str]:
    if raw is None:
        raise PolicyConfigException("no domain mapping entries set")
    if not isinstance(raw, dict):
        raise PolicyConfigException(f"domainMap must be a mapping, got {type(raw).__name__}")
    if not raw:
        raise PolicyConfigException("no domain mapping entries set")

    domain_map: dict[str, str] = {}
    for source, target in raw.items():
        key = _normalize_domain(source, "domainMap key")
        if key in domain_map:
            raise PolicyConfigException(f"duplicate domainMap entry for {key!r}")
        domain_map[key] = _normalize_domain(target, f"domainMap[{key!r}]")
    return domain_map


def _parse_ignore_list(raw: Any) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if not isinstance(raw, list):
        raise PolicyConfigException(f"ignoreList must be a sequence, got {type(raw).__name__}")
    return frozenset(_normalize_domain(entry, "ignoreList entry") for entry in raw)


def load_policy(raw: bytes | str, strict: bool = False) -> RewritePolicy:
    """Build a :class:`RewritePolicy` from a YAML policy document.

    Domains are compared case-insensitively, so every entry is lowercased.

    Args:
        raw: The YAML document as bytes or text.
        strict: When ``True``, reject domains that appear both in
            ``ignoreList`` and as a ``domainMap`` key instead of warning.

    Returns:
        The immutable policy.

    Raises:
        PolicyConfigException: If the document is invalid.
    """
    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise PolicyConfigException(f"policy is not valid YAML: {e}") from e

    if document is None:
        document = {}
    if not isinstance(document, dict):
        raise PolicyConfigException(f"policy must be a mapping, got {type(document).__name__}")

    policy = RewritePolicy(
        domain_map=_parse_domain_map(document.get("domainMap")),
        ignore_list=_parse_ignore_list(document.get("ignoreList")),
    )

    if overlap := sorted(policy.overlapping_domains):
        # The ignore list takes precedence when a domain is listed twice
        if strict:
            raise PolicyConfigException(f"domains listed in both ignoreList and domainMap: {', '.join(overlap)}")
        logger.warning(f"Domains listed in both ignoreList and domainMap will be ignored: {', '.join(overlap)}")

    return policy


def load_policy_file(path: str | pathlib.Path, strict: bool = False) -> RewritePolicy:
    """Read and parse the policy document at ``path``, logging its entries."""
    try:
        raw = pathlib.Path(path).read_bytes()
    except OSError as e:
        raise PolicyConfigException(f"unable to read config file {path}: {e}") from e

    policy = load_policy(raw, strict=strict)

    logger.info(f"Domain mapping configuration loaded: {len(policy.domain_map)} entries")
    for source, target in policy.domain_map.items():
        logger.info(f"Remapping entry: {source} -> {target}")

    if policy.ignore_list:
        logger.info(f"Ignore list configuration loaded: {len(policy.ignore_list)} entries")
        for domain in sorted(policy.ignore_list):
            logger.info(f"Ignore list entry: {domain}")
    else:
        logger.info("Ignore list empty")

    return policy


def evaluate_domain(domain: str, policy: RewritePolicy) -> tuple[str, RewriteClassification]:
    """Decide the output domain for an image whose registry is ``domain``.

    Precedence:
        1. ``domain`` is already a mirror target → unchanged, passthrough.
        2. ``domain`` is a ``domain_map`` key → mapped to its target.
        3. ``domain`` is in ``ignore_list`` → unchanged, overriding step 2.
        4. Otherwise → unchanged, unknown.

    Args:
        domain: Normalized, lowercase registry domain.
        policy: The active rewrite policy.

    Returns:
        ``(target_domain, classification)``.
    """
    if domain in policy.mirror_domains:
        return domain, RewriteClassification.PASSTHROUGH_ALREADY_MIRRORED

    target: str | None = None
    classification = RewriteClassification.UNKNOWN

    if domain in policy.domain_map:
        target = policy.domain_map[domain]
        classification = RewriteClassification.MAPPED

    if domain in policy.ignore_list:
        target = domain
        classification = RewriteClassification.IGNORED

    if target is None:
        return domain, RewriteClassification.UNKNOWN

    return target, classification
