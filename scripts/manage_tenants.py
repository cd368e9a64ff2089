#!/usr/bin/env python3
"""Operator CLI for tenant lifecycle.

Usage:
    python scripts/manage_tenants.py onboard --subdomain sanjose --name "Colegio San José"
    python scripts/manage_tenants.py list
    python scripts/manage_tenants.py deactivate <tenant-id>
    python scripts/manage_tenants.py deprovision <tenant-id> --yes
    python scripts/manage_tenants.py sync
    python scripts/manage_tenants.py stats [<tenant-id> ...]

Connects directly to the database using DATABASE_URL from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Ensure project root is on sys.path so we can import src.coleapp
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


async def run(args: argparse.Namespace) -> int:
    from src.coleapp.api.middleware.logging import configure_structlog
    from src.coleapp.config import get_settings
    from src.coleapp.core.database import init_db
    from src.coleapp.core.errors import TenancyError
    from src.coleapp.core.registry import ConnectionRegistry
    from src.coleapp.schemas.tenant import TenantCreate
    from src.coleapp.services.coordinator import TenantCoordinator
    from src.coleapp.services.directory import TenantDirectory
    from src.coleapp.services.provisioner import SchemaProvisioner

    settings = get_settings()
    configure_structlog()

    registry = ConnectionRegistry(
        settings.DATABASE_URL,
        shared_schema=settings.SHARED_SCHEMA,
        pool_size=1,
        max_overflow=settings.TENANT_MAX_OVERFLOW,
        control_plane_pool_size=2,
    )
    try:
        control_plane = await registry.control_plane()
        await init_db(control_plane, settings.SHARED_SCHEMA, settings.TEMPLATE_SCHEMA)
        directory = TenantDirectory(control_plane)
        provisioner = SchemaProvisioner(
            registry,
            template_schema=settings.TEMPLATE_SCHEMA,
            deprovision_attempts=settings.DEPROVISION_MAX_ATTEMPTS,
        )
        coordinator = TenantCoordinator(
            registry,
            directory,
            provisioner,
            concurrency=settings.CROSS_SCHEMA_CONCURRENCY,
        )

        try:
            if args.command == "onboard":
                record = await coordinator.onboard_tenant(
                    TenantCreate(name=args.name, subdomain=args.subdomain, contact_email=args.email)
                )
                print("Tenant onboarded successfully:")
                print(f"  ID:        {record.id}")
                print(f"  Subdomain: {record.subdomain}")
                print(f"  Name:      {record.name}")
                print(f"  Schema:    {record.schema_name}")

            elif args.command == "list":
                for record in await directory.list_active():
                    print(f"{record.id}  {record.subdomain:<24} {record.schema_name:<32} {record.name}")

            elif args.command == "deactivate":
                record = await coordinator.deactivate_tenant(args.tenant_id)
                print(f"Deactivated {record.subdomain} (schema kept: {record.schema_name})")

            elif args.command == "deprovision":
                if not args.yes:
                    print("Refusing to drop tenant data without --yes", file=sys.stderr)
                    return 2
                await coordinator.deprovision_tenant(args.tenant_id)
                print(f"Deprovisioned {args.tenant_id}")

            elif args.command == "sync":
                results = await coordinator.resync_tenant_schemas()
                for result in results:
                    print(f"{result.schema_name:<32} {'ok' if result.ok else f'FAILED: {result.error}'}")
                return 0 if all(r.ok for r in results) else 1

            elif args.command == "stats":
                entries = await coordinator.collect_stats(args.tenant_ids or None)
                for entry in entries:
                    if entry.stats is None:
                        print(f"{entry.subdomain:<24} error: {entry.error}")
                    else:
                        counts = ", ".join(f"{k}={v}" for k, v in entry.stats.model_dump().items())
                        print(f"{entry.subdomain:<24} {counts}")
        except TenancyError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    finally:
        await registry.close_all()

    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Manage school tenants")
    sub = parser.add_subparsers(dest="command", required=True)

    onboard = sub.add_parser("onboard", help="Register and provision a new school")
    onboard.add_argument("--subdomain", required=True, help="Public routing name (e.g., sanjose)")
    onboard.add_argument("--name", required=True, help="School display name")
    onboard.add_argument("--email", default=None, help="Contact email")

    sub.add_parser("list", help="List active tenants")

    deactivate = sub.add_parser("deactivate", help="Soft delete: stop routing, keep data")
    deactivate.add_argument("tenant_id")

    deprovision = sub.add_parser("deprovision", help="Hard delete: drop schema and data")
    deprovision.add_argument("tenant_id")
    deprovision.add_argument("--yes", action="store_true", help="Confirm irreversible data loss")

    sub.add_parser("sync", help="Replicate new tenant tables into every active schema")

    stats = sub.add_parser("stats", help="Entity counts per tenant")
    stats.add_argument("tenant_ids", nargs="*")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
