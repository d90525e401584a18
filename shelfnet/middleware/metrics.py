"""Prometheus request metrics, labelled by route template rather than raw path."""

from __future__ import annotations

import time

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "shelfnet_http_requests_total",
    "HTTP requests handled, by route and status",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "shelfnet_http_request_duration_seconds",
    "HTTP request latency by route",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

UNMATCHED = "<unmatched>"


def endpoint_label(request: Request) -> str:
    # /books/{book_id} rather than /books/42
    route = request.scope.get("route")
    return getattr(route, "path", UNMATCHED)


async def track_requests(request: Request, call_next) -> Response:
    start = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - start

    endpoint = endpoint_label(request)
    REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, endpoint).observe(elapsed)
    return response


def metrics_response() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
