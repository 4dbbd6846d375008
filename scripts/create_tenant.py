#!/usr/bin/env python3
"""
Tenant Creation Script
Creates a user and a tenant they administer, then prints a bearer token.
"""
import asyncio
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select
from roster_import.database import engine, Base, async_session_maker
from roster_import.models import Tenant, User
from roster_import.services.auth_service import create_access_token


async def create_tenant(username: str, tenant_name: str, full_name: str | None = None):
    """Create (or reuse) a user and give them a new tenant."""
    print("=" * 50)
    print("Roster Import Tenant Setup")
    print("=" * 50)

    print("\n[1/3] Ensuring database tables exist...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("      Tables verified!")

    print(f"\n[2/3] Creating tenant '{tenant_name}' for '{username}'...")
    async with async_session_maker() as session:
        result = await session.execute(
            select(User).where(User.username == username)
        )
        user = result.scalar_one_or_none()

        if user is None:
            user = User(username=username, full_name=full_name, is_active=True)
            session.add(user)
            await session.flush()
            print(f"      Created user '{username}'")
        else:
            user.is_active = True
            print(f"      Reusing user '{username}'")

        tenant = Tenant(name=tenant_name, admin_id=user.id)
        session.add(tenant)
        await session.commit()

        user_id, tenant_id = user.id, tenant.id

    print("\n[3/3] Issuing access token...")
    token = create_access_token({"sub": str(user_id)})
    print(f"      User ID:   {user_id}")
    print(f"      Tenant ID: {tenant_id}")
    print(f"      Token:     {token}")

    print("\n" + "=" * 50)
    print("Send the token as 'Authorization: Bearer <token>'")
    print("=" * 50)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create a tenant and its admin user")
    parser.add_argument(
        "--username", "-u",
        type=str,
        default="admin",
        help="Admin username (default: admin)"
    )
    parser.add_argument(
        "--tenant", "-t",
        type=str,
        required=True,
        help="Tenant (association) name"
    )
    parser.add_argument(
        "--name", "-n",
        type=str,
        default=None,
        help="Full name of the admin"
    )

    args = parser.parse_args()
    asyncio.run(create_tenant(args.username, args.tenant, args.name))
