#!/usr/bin/env python
"""Create the compensation admin tables in a database.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...
    python scripts/create_schema.py --dry-run
"""

import argparse
import asyncio
import sys

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from comp_admin.config import settings
from comp_admin.database import create_engine_for_url
from comp_admin.models import Base


async def existing_tables(database_url: str) -> set[str]:
    engine = create_engine_for_url(database_url)
    try:
        async with engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()
    return set(names)


async def create_tables(database_url: str) -> None:
    engine = create_engine_for_url(database_url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description="Create compensation admin tables")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Async database URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the tables that would be created without creating them",
    )

    args = parser.parse_args()

    print("Schema Setup")
    print("=" * 50)
    print(f"Database: {args.database_url.split('@')[-1] if '@' in args.database_url else args.database_url}")
    print()

    try:
        existing = asyncio.run(existing_tables(args.database_url))
    except SQLAlchemyError as e:
        print(f"ERROR: Could not connect to database: {e}")
        return 1

    pending = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
    print(f"Tables already present: {len(existing & set(Base.metadata.tables))}")

    if not pending:
        print("Nothing to create.")
        return 0

    print(f"Tables to create: {len(pending)}")
    for name in pending:
        print(f"  {name}")

    if args.dry_run:
        print("\n[DRY RUN] No changes made")
        return 0

    try:
        asyncio.run(create_tables(args.database_url))
    except SQLAlchemyError as e:
        print(f"FAILED: {e}")
        return 1

    print()
    print("=" * 50)
    print(f"Created: {len(pending)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
