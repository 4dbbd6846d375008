from __future__ import annotations

import asyncio
import os
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Sequence

# Must be set before roster_import.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from roster_import.database import Base, get_db
from roster_import.main import app
from roster_import.models import ImportSession, Tenant, Unit, User
from roster_import.services.auth_service import create_access_token

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SCENARIO_HEADERS = ["Nr.ap.", "Suprafata", "Cota", "Email"]
SCENARIO_ROWS = [
    ["1", "50,5", "33.3", "a@x.com"],
    ["1", "60", "33.3", "a@x.com"],
    ["3", "-5", "33.4", "bad-email"],
]


def build_xlsx(sheets: dict[str, Sequence[Sequence[Any]]]) -> bytes:
    """Workbook bytes with one sheet per entry, rows written as given."""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets.items():
        sheet = workbook.create_sheet(title)
        for row in rows:
            sheet.append(list(row))
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture()
def make_xlsx():
    return build_xlsx


@pytest.fixture()
def scenario_xlsx() -> bytes:
    return build_xlsx({"Proprietari": [SCENARIO_HEADERS, *SCENARIO_ROWS]})


@pytest.fixture()
def db_maker(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'roster.db'}", poolclass=NullPool)

    async def _create_all() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_all())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    asyncio.run(engine.dispose())


@pytest.fixture()
def registry(db_maker) -> SimpleNamespace:
    """Two users, each administering one tenant; alice's tenant has unit 99."""

    async def _seed() -> SimpleNamespace:
        async with db_maker() as session:
            alice = User(username="alice", full_name="Alice Admin")
            bob = User(username="bob", full_name="Bob Admin")
            session.add_all([alice, bob])
            await session.flush()

            alice_tenant = Tenant(name="Asociatia Alice", admin_id=alice.id)
            bob_tenant = Tenant(name="Asociatia Bob", admin_id=bob.id)
            session.add_all([alice_tenant, bob_tenant])
            await session.flush()

            session.add(Unit(tenant_id=alice_tenant.id, number="99"))
            await session.commit()
            return SimpleNamespace(
                alice_id=alice.id,
                bob_id=bob.id,
                alice_tenant_id=alice_tenant.id,
                bob_tenant_id=bob_tenant.id,
            )

    return asyncio.run(_seed())


@pytest.fixture()
def count_sessions(db_maker):
    def _count() -> int:
        async def _run() -> int:
            async with db_maker() as session:
                result = await session.execute(select(func.count()).select_from(ImportSession))
                return int(result.scalar())

        return asyncio.run(_run())

    return _count


def auth_headers(user_id) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token({'sub': str(user_id)})}"}


@pytest.fixture()
def client(db_maker) -> TestClient:
    async def override_get_db():
        async with db_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def alice_headers(registry) -> dict[str, str]:
    return auth_headers(registry.alice_id)


@pytest.fixture()
def bob_headers(registry) -> dict[str, str]:
    return auth_headers(registry.bob_id)
