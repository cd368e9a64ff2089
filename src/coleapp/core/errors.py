"""Error taxonomy for the tenancy core.

Every error propagates to the immediate caller. The core never falls back to
a default or shared schema when one of these is raised.
"""

from __future__ import annotations

from typing import Any


class TenancyError(Exception):
    """Base error for tenant routing, provisioning, and lookup."""


class ConfigurationError(TenancyError):
    """Base connection parameters are missing or unusable. Not retried."""


class SubdomainTakenError(TenancyError):
    """A tenant with this subdomain already exists."""

    def __init__(self, subdomain: str) -> None:
        self.subdomain = subdomain
        super().__init__(f"Subdomain '{subdomain}' is already taken")


class UnknownTenantError(TenancyError):
    """Lookup by id, subdomain, or schema name found no (active) tenant."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Tenant not found or inactive: {identifier}")


class ProvisioningError(TenancyError):
    """Schema or table DDL failed for a tenant schema.

    Attributes:
        schema_name: The tenant schema being provisioned.
        table: The table whose creation failed, if the failure was table-level.
        operation: "provision", "seed", or "deprovision".
    """

    def __init__(
        self,
        schema_name: str,
        message: str,
        *,
        table: str | None = None,
        operation: str = "provision",
    ) -> None:
        self.schema_name = schema_name
        self.table = table
        self.operation = operation
        location = f"{schema_name}.{table}" if table else schema_name
        super().__init__(f"{operation} failed for {location}: {message}")


class SchemaNameConflictError(ProvisioningError):
    """The derived schema name already belongs to a different tenant."""

    def __init__(self, schema_name: str, subdomain: str) -> None:
        self.subdomain = subdomain
        super().__init__(
            schema_name,
            f"schema name derived from subdomain '{subdomain}' is already in use by another tenant",
        )


class DeprovisioningError(ProvisioningError):
    """Dropping a tenant schema failed after all retry attempts."""

    def __init__(self, schema_name: str, message: str) -> None:
        super().__init__(schema_name, message, operation="deprovision")


class HandleConstructionError(TenancyError):
    """Opening a schema-bound connection handle failed. Safe to retry."""

    def __init__(self, schema_name: str, original_error: Exception) -> None:
        self.schema_name = schema_name
        self.original_error = original_error
        super().__init__(f"Could not open connection for schema '{schema_name}': {original_error}")


class CrossSchemaOperationError(TenancyError):
    """An all-or-nothing cross-schema run stopped at a failing schema.

    Attributes:
        schema_name: The schema whose operation failed.
        original_error: The underlying exception.
        completed: Results for the schemas that succeeded before the failure.
    """

    def __init__(self, schema_name: str, original_error: BaseException, completed: list[Any]) -> None:
        self.schema_name = schema_name
        self.original_error = original_error
        self.completed = completed
        super().__init__(
            f"Cross-schema operation failed at '{schema_name}' "
            f"after {len(completed)} completed: {original_error}"
        )
