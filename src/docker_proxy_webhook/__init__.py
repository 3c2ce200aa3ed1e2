"""docker-proxy-webhook — Kubernetes image mirror admission webhook.

Rewrite container image references in incoming pods so that images are
pulled from an organization-controlled registry mirror.
"""

import logging

from docker_proxy_webhook._version import __version__
from docker_proxy_webhook.models import RewriteClassification, RewritePolicy
from docker_proxy_webhook.policy import load_policy
from docker_proxy_webhook.rewriter import rewrite_image, rewrite_pod

__all__ = [
    "RewriteClassification",
    "RewritePolicy",
    "__version__",
    "load_policy",
    "rewrite_image",
    "rewrite_pod",
]

logging.getLogger(__name__).addHandler(logging.NullHandler())
