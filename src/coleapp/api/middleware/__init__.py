"""API middleware package."""

from src.coleapp.api.middleware.logging import LoggingMiddleware
from src.coleapp.api.middleware.tenant import TenantMiddleware

__all__ = ["LoggingMiddleware", "TenantMiddleware"]
