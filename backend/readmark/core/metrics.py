"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "rdmk_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "rdmk_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

PROVIDER_FAILURES = Counter(
    "rdmk_provider_failures_total",
    "Failed or timed out provider calls",
    labelnames=("provider",),
    registry=REGISTRY,
)

DEGRADED_SEARCHES = Counter(
    "rdmk_degraded_searches_total",
    "Searches that fell back to lexical-only ranking",
    registry=REGISTRY,
)

CORPUS_SIZE = Gauge(
    "rdmk_last_corpus_size",
    "Number of highlights scanned by the most recent search",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "PROVIDER_FAILURES",
    "DEGRADED_SEARCHES",
    "CORPUS_SIZE",
    "metrics_response",
]
