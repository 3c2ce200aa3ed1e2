"""docker-proxy-webhook — Kubernetes image mirror admission webhook.

Loads the rewrite policy, then serves the mutating webhook together with its
health probes and Prometheus metrics.
"""

from __future__ import annotations

import argparse
import logging
import sys

from .admission import DockerProxyMutatingWebhook
from .metrics import PrometheusMetricsSink
from .models import DEFAULT_CONFIG_PATH, DEFAULT_HEALTH_ADDR, DEFAULT_LISTEN_PORT, DEFAULT_METRICS_ADDR
from .policy import PolicyConfigException, load_policy_file
from .server import run

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI usage. Only called from main()."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s : %(name)-13s : %(levelname)s :: %(message)s",
    )


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Optional list of argument strings (defaults to ``sys.argv``).

    Returns:
        Parsed ``argparse.Namespace``.
    """
    parser = argparse.ArgumentParser(
        description="docker-proxy-webhook — Rewrite pod images to pull from a registry mirror",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the YAML rewrite policy")
    parser.add_argument(
        "--pull-secret",
        default="",
        help=(
            "Include a pull secret in the pod configuration if the image reference has been rewritten. "
            "Leave empty to disable pull secrets."
        ),
    )
    parser.add_argument(
        "--listen-port",
        type=int,
        default=DEFAULT_LISTEN_PORT,
        help="The port the webhook endpoint binds to",
    )
    parser.add_argument("--metrics-addr", default=DEFAULT_METRICS_ADDR, help="The address the metric endpoint binds to")
    parser.add_argument("--health-addr", default=DEFAULT_HEALTH_ADDR, help="The address the health endpoint binds to")
    parser.add_argument("--tls-cert-file", help="TLS certificate served by the webhook endpoint")
    parser.add_argument("--tls-key-file", help="TLS private key matching --tls-cert-file")
    parser.add_argument(
        "--strict-config",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Reject policies listing a domain in both ignoreList and domainMap",
    )
    parser.add_argument("--log-level", choices=_LOG_LEVELS, default="INFO", help="Logging verbosity")

    parsed = parser.parse_args(args)
    if bool(parsed.tls_cert_file) != bool(parsed.tls_key_file):
        parser.error("--tls-cert-file and --tls-key-file must be given together")
    return parsed


def run_webhook(args: argparse.Namespace) -> int:
    """Load the policy and serve the webhook until shutdown.

    Args:
        args: Parsed CLI arguments.

    Returns:
        Process exit code: 0 after a clean shutdown, 1 if the policy is invalid.
    """
    try:
        policy = load_policy_file(args.config, strict=args.strict_config)
    except PolicyConfigException as e:
        logger.error(f"Invalid config: {e}")
        return 1

    webhook = DockerProxyMutatingWebhook(
        policy=policy,
        pull_secret=args.pull_secret,
        metrics=PrometheusMetricsSink(),
    )

    logger.info("Starting manager")
    run(
        webhook,
        listen_port=args.listen_port,
        metrics_addr=args.metrics_addr,
        health_addr=args.health_addr,
        tls_cert_file=args.tls_cert_file,
        tls_key_file=args.tls_key_file,
    )
    return 0


def main() -> None:
    """CLI entry point for docker-proxy-webhook."""
    parsed_args = parse_args()
    _setup_logging(parsed_args.log_level)
    try:
        sys.exit(run_webhook(args=parsed_args))
    except Exception as e:
        logger.error(f"Problem running webhook: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
