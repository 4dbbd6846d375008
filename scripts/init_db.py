#!/usr/bin/env python3
"""
Database Initialization Script
Creates the registry and import session tables.
"""
import asyncio
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import func, select
from roster_import.database import engine, Base, async_session_maker
import roster_import.models  # noqa: F401  (registers tables on Base.metadata)


async def init_database():
    """Create every table and report row counts."""
    print("=" * 50)
    print("Roster Import Database Initialization")
    print("=" * 50)

    print("\n[1/2] Creating database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("      Tables created successfully!")

    print("\n[2/2] Verifying database structure...")
    tables = Base.metadata.sorted_tables
    print(f"      Found {len(tables)} tables:")
    async with async_session_maker() as session:
        for table in tables:
            result = await session.execute(select(func.count()).select_from(table))
            print(f"        - {table.name}: {result.scalar()} rows")

    print("\n" + "=" * 50)
    print("Database initialization complete!")
    print("=" * 50)


async def reset_database():
    """Drop all tables and recreate them (USE WITH CAUTION!)."""
    print("WARNING: This will delete all data!")
    confirm = input("Type 'RESET' to confirm: ")

    if confirm != "RESET":
        print("Aborted.")
        return

    print("\nDropping all tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    print("Recreating tables...")
    await init_database()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Database initialization script")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop and recreate all tables (destructive!)"
    )
    args = parser.parse_args()

    if args.reset:
        asyncio.run(reset_database())
    else:
        asyncio.run(init_database())
