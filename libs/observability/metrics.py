"""Prometheus metrics helpers for FastAPI services."""

from __future__ import annotations

import time

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

_REQUEST_COUNTER = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    labelnames=("service", "method", "path", "status"),
)
_REQUEST_LATENCY = Histogram(
    "http_request_latency_seconds",
    "Latency of HTTP requests in seconds",
    labelnames=("service", "method", "path"),
    buckets=(
        0.05,
        0.1,
        0.25,
        0.5,
        0.75,
        1.0,
        2.5,
        5.0,
        7.5,
        10.0,
    ),
)
_VERIFICATION_OUTCOMES = Counter(
    "verification_outcomes_total",
    "Identity verification callbacks by provider and result",
    labelnames=("provider", "result"),
)
_SCORE_REQUESTS = Counter(
    "score_requests_total",
    "Score requests reaching a terminal state",
    labelnames=("category", "state"),
)
_SCORE_POLLS = Counter(
    "score_poll_attempts_total",
    "Reads issued against score contracts while waiting for a result",
    labelnames=("category",),
)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Collect basic request metrics for Prometheus."""

    def __init__(self, app: ASGIApp, *, service_name: str) -> None:
        super().__init__(app)
        self._service_name = service_name

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        route = request.scope.get("route")
        path_template: str = getattr(route, "path", request.url.path)
        method = request.method.upper()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            _REQUEST_COUNTER.labels(self._service_name, method, path_template, "500").inc()
            _REQUEST_LATENCY.labels(self._service_name, method, path_template).observe(duration)
            raise
        duration = time.perf_counter() - start
        status_code = getattr(response, "status_code", 500)
        _REQUEST_COUNTER.labels(self._service_name, method, path_template, str(status_code)).inc()
        _REQUEST_LATENCY.labels(self._service_name, method, path_template).observe(duration)
        return response


def record_verification_outcome(provider: str, *, success: bool) -> None:
    _VERIFICATION_OUTCOMES.labels(provider, "success" if success else "failed").inc()


def record_score_request(category: str, state: str) -> None:
    _SCORE_REQUESTS.labels(category, state).inc()


def record_score_poll(category: str) -> None:
    _SCORE_POLLS.labels(category).inc()


def setup_metrics(app: FastAPI, *, service_name: str) -> None:
    """Attach Prometheus metrics middleware and endpoint."""

    if getattr(app.state, "_metrics_configured", False):
        return

    app.add_middleware(MetricsMiddleware, service_name=service_name)

    async def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    app.add_api_route(
        "/metrics",
        metrics_endpoint,
        methods=["GET"],
        include_in_schema=False,
        name="metrics",
    )
    app.state._metrics_configured = True
