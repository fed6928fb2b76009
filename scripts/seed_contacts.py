#!/usr/bin/env python3
"""
Seed a Contacts database with sample contacts.

Contacts whose email already exists are skipped, so the script can be run
repeatedly against the same database.
"""

import argparse
import asyncio
import json
import os
import sys

from service_contacts.app.persistence.base import UniqueConstraintError
from service_contacts.app.persistence.postgres import PostgreSQLContactStore
from shared.test_helpers import TestDataFactory


async def seed(*, database_url: str, count: int, domain: str) -> dict:
    """Insert ``count`` sample contacts and return the summary."""
    store = PostgreSQLContactStore(database_url, min_size=1, max_size=2)
    await store.start()

    created = 0
    skipped = 0
    try:
        for contact in TestDataFactory.create_test_contacts(count, domain):
            try:
                async with store.transaction() as tx:
                    await tx.insert(contact.name, contact.email, contact.phone)
                created += 1
            except UniqueConstraintError:
                skipped += 1
    finally:
        await store.stop()

    return {"created": created, "skipped": skipped}


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed the contacts table with sample data.")
    parser.add_argument("--database-url", default=os.getenv("CONTACTS_DATABASE_URL", "postgresql://localhost:5432/contacts"), help="PostgreSQL DSN")
    parser.add_argument("--count", type=int, default=50, help="Number of contacts to generate")
    parser.add_argument("--domain", default="example.com", help="Email domain for generated contacts")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    try:
        summary = asyncio.run(seed(database_url=args.database_url, count=args.count, domain=args.domain))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[seed] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
