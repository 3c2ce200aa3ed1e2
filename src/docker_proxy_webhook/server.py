"""HTTP serving for the docker-proxy webhook.

Three listeners run side by side: the TLS webhook endpoint (``/mutate``), the
liveness/readiness probes and the Prometheus metrics endpoint.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import uvicorn
from litestar import Litestar, get, post
from prometheus_client import start_http_server

from .admission import DockerProxyMutatingWebhook

logger = logging.getLogger(__name__)


def split_bind_address(address: str) -> tuple[str, int]:
    """Split a ``host:port`` bind address; an empty host binds every interface.

    Raises:
        ValueError: If the port is missing or not a number.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Bind address must be in the form [host]:port, got {address!r}")
    return host or "0.0.0.0", int(port)  # noqa: S104


def create_webhook_app(webhook: DockerProxyMutatingWebhook) -> Litestar:
    """Build the ASGI app exposing ``POST /mutate``."""

    @post("/mutate", status_code=200)
    async def mutate(data: dict[str, Any]) -> dict[str, Any]:
        """Answer an AdmissionReview with the rewritten pod patch."""
        return webhook.handle(data)

    return Litestar(route_handlers=[mutate])


def create_probe_app() -> Litestar:
    """Build the ASGI app serving the Kubernetes liveness and readiness probes."""

    @get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"status": "ok", "timestamp": time.time()}

    @get("/readyz")
    async def readyz() -> dict[str, Any]:
        return {"status": "ok", "timestamp": time.time()}

    return Litestar(route_handlers=[healthz, readyz])


async def _serve(
    webhook: DockerProxyMutatingWebhook,
    listen_port: int,
    health_addr: str,
    tls_cert_file: str | None,
    tls_key_file: str | None,
) -> None:
    health_host, health_port = split_bind_address(health_addr)

    webhook_server = uvicorn.Server(uvicorn.Config(
        create_webhook_app(webhook),
        host="0.0.0.0",  # noqa: S104
        port=listen_port,
        ssl_certfile=tls_cert_file,
        ssl_keyfile=tls_key_file,
        log_level="warning",
    ))
    probe_server = uvicorn.Server(uvicorn.Config(
        create_probe_app(), host=health_host, port=health_port, log_level="warning",
    ))

    await asyncio.gather(webhook_server.serve(), probe_server.serve())


def run(
    webhook: DockerProxyMutatingWebhook,
    listen_port: int,
    metrics_addr: str,
    health_addr: str,
    tls_cert_file: str | None = None,
    tls_key_file: str | None = None,
) -> None:
    """Start the metrics, probe and webhook listeners and block until shutdown."""
    metrics_host, metrics_port = split_bind_address(metrics_addr)
    start_http_server(metrics_port, addr=metrics_host)
    logger.info(f"Prometheus metrics server started on {metrics_host}:{metrics_port}")

    if not (tls_cert_file and tls_key_file):
        logger.warning("No TLS certificate configured; serving /mutate over plain HTTP")

    logger.info(f"Starting webhook server on port {listen_port}, probes on {health_addr}")
    try:
        asyncio.run(_serve(webhook, listen_port, health_addr, tls_cert_file, tls_key_file))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
