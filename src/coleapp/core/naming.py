"""Schema naming: subdomain -> tenant schema identifier."""

from __future__ import annotations

import re

SCHEMA_PREFIX = "tenant_"

# PostgreSQL truncates identifiers beyond NAMEDATALEN - 1 bytes.
MAX_IDENTIFIER_LENGTH = 63

_UNSAFE_CHARS = re.compile(r"[^a-z0-9]")
_TENANT_SCHEMA_PATTERN = re.compile(r"tenant_[a-z0-9_]+")


def derive_schema_name(subdomain: str) -> str:
    """Derive the schema name for a subdomain.

    Lowercases the subdomain, replaces every character outside [a-z0-9]
    with "_" (one underscore per character, no collapsing) and prefixes
    "tenant_". "San José 2025!" becomes "tenant_san_jos__2025_".

    Raises:
        ValueError: If the subdomain is empty or the result would exceed
            the identifier length limit.
    """
    if not subdomain:
        raise ValueError("Subdomain must not be empty")

    schema_name = SCHEMA_PREFIX + _UNSAFE_CHARS.sub("_", subdomain.lower())
    if len(schema_name) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"Subdomain '{subdomain}' yields a schema name longer than "
            f"{MAX_IDENTIFIER_LENGTH} characters"
        )
    return schema_name


def is_tenant_schema_name(name: str) -> bool:
    """True if name is a well-formed tenant schema identifier."""
    return len(name) <= MAX_IDENTIFIER_LENGTH and bool(_TENANT_SCHEMA_PATTERN.fullmatch(name))
