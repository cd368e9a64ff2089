"""Tenant context propagation via Python contextvars.

The TenantContext is set by TenantMiddleware at the start of each
tenant-scoped request and is accessible anywhere in the call stack via
get_current_tenant(). Dependencies use it to fetch the schema-bound handle
for the request; feature code never reads schema_name itself.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass

# ── Tenant Context ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TenantContext:
    """Immutable tenant context for the current request."""

    tenant_id: str
    subdomain: str
    schema_name: str  # e.g., "tenant_colegio_sur"


_tenant_context: contextvars.ContextVar[TenantContext] = contextvars.ContextVar("tenant_context")


def get_current_tenant() -> TenantContext:
    """Get the tenant context for the current request.

    Raises RuntimeError if no tenant context has been set (i.e., the call
    is not within a tenant-scoped request).
    """
    try:
        return _tenant_context.get()
    except LookupError:
        raise RuntimeError("No tenant context set -- request is not tenant-scoped")


def set_tenant_context(ctx: TenantContext) -> contextvars.Token[TenantContext]:
    """Set the tenant context for the current request. Returns a token for reset."""
    return _tenant_context.set(ctx)


def reset_tenant_context(token: contextvars.Token[TenantContext]) -> None:
    """Restore the context that was active before set_tenant_context()."""
    _tenant_context.reset(token)


# ── Paths that skip tenant resolution ───────────────────────────────────────

SKIP_TENANT_PATHS = (
    "/health",
    "/metrics",
    "/docs",
    "/openapi.json",
    "/redoc",
    "/api/v1/tenants",
)


def skips_tenant_resolution(path: str) -> bool:
    """True for SKIP_TENANT_PATHS and paths below them, matched per segment."""
    return any(path == skip or path.startswith(skip + "/") for skip in SKIP_TENANT_PATHS)
