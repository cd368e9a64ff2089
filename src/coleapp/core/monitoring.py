"""Prometheus metrics and Sentry integration.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- Tenancy metrics: open handles, handle constructions, provisioning operations
- track_provisioning(): Context manager timing a provisioning operation
- init_sentry(): Initialize Sentry with tenant-aware before_send callback
- get_metrics_response(): Prometheus exposition for /metrics
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code", "tenant_id"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "tenant_id"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Tenancy Metrics ──────────────────────────────────────────────────────────

tenant_handles_open = Gauge(
    "tenant_handles_open",
    "Schema-bound connection handles currently held by the registry",
)

handle_constructions_total = Counter(
    "tenant_handle_constructions_total",
    "Connection handle construction attempts",
    ["status"],
)

provisioning_operations_total = Counter(
    "tenant_provisioning_operations_total",
    "Schema provisioning operations",
    ["operation", "status"],
)

provisioning_duration_seconds = Histogram(
    "tenant_provisioning_duration_seconds",
    "Schema provisioning operation duration in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Tenant middleware runs inside this one; it leaves the id on request.state
        tenant_id = getattr(request.state, "tenant_id", None) or "none"
        endpoint = request.url.path

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
            tenant_id=tenant_id,
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
            tenant_id=tenant_id,
        ).observe(duration)

        return response


# ── Provisioning Metrics Helper ─────────────────────────────────────────────


@asynccontextmanager
async def track_provisioning(operation: str) -> AsyncGenerator[None, None]:
    """Record count and duration of a provisioning operation.

    Usage:
        async with track_provisioning("provision"):
            await create_schema(...)
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except BaseException:
        status = "error"
        raise
    finally:
        provisioning_operations_total.labels(operation=operation, status=status).inc()
        provisioning_duration_seconds.labels(operation=operation).observe(
            time.perf_counter() - start_time
        )


# ── Sentry Integration ───────────────────────────────────────────────────────


def init_sentry(dsn: str, environment: str) -> None:
    """Initialize Sentry SDK with tenant-aware event tagging."""
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    traces_sample_rate = 0.1 if environment == "production" else 1.0

    def before_send(event: dict, hint: dict) -> dict:
        """Tag events with the tenant of the current request, if any."""
        from src.coleapp.core.tenant import get_current_tenant

        try:
            ctx = get_current_tenant()
        except RuntimeError:
            return event
        event.setdefault("tags", {})
        event["tags"]["tenant_id"] = ctx.tenant_id
        event["tags"]["tenant_subdomain"] = ctx.subdomain
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            StarletteIntegration(),
            FastApiIntegration(),
        ],
        before_send=before_send,
    )
    logger.info("sentry.initialized", environment=environment)


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
