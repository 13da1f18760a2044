"""Prometheus metrics shared by the API and the model client."""

from __future__ import annotations

import re

from prometheus_client import REGISTRY, Counter, Histogram


def _get_or_create_metric(metric_cls, name: str, documentation: str, labelnames):
    # Re-importing the module (tests, reloaders) must not register twice.
    existing = REGISTRY._names_to_collectors.get(name)
    if existing is not None:
        return existing
    return metric_cls(name, documentation, labelnames=labelnames)


REQUEST_COUNTER = _get_or_create_metric(
    Counter,
    "healthrecord_requests_total",
    "Total HTTP requests processed by the API",
    ("method", "endpoint", "status"),
)
REQUEST_LATENCY = _get_or_create_metric(
    Histogram,
    "healthrecord_request_latency_seconds",
    "Latency of HTTP requests",
    ("method", "endpoint"),
)
AI_REQUESTS = _get_or_create_metric(
    Counter,
    "healthrecord_ai_requests_total",
    "Calls to the external text generation API by outcome",
    ("outcome",),
)
AI_PARSE_FAILURES = _get_or_create_metric(
    Counter,
    "healthrecord_ai_parse_failures_total",
    "Model replies that were not a JSON array of question strings",
    (),
)

_PATH_PARAM_RE = re.compile(r"/[0-9]+(?=/|$)")


def normalise_path_for_metrics(path: str) -> str:
    """Reduce numeric id segments in request paths for metrics labels."""

    if not path:
        return "/"
    return _PATH_PARAM_RE.sub("/:param", path)


__all__ = [
    "REQUEST_COUNTER",
    "REQUEST_LATENCY",
    "AI_REQUESTS",
    "AI_PARSE_FAILURES",
    "normalise_path_for_metrics",
]
