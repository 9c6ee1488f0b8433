"""
Pytest configuration and shared fixtures.

Provides:
- AnyIO backend selection (asyncio)
- A fresh in-memory SQLite database per test (aiosqlite + StaticPool)
- An AsyncSession bound to it
- Test data factories for owners, pets and tags
- Isolation of the field-path registry cache between tests
"""

from __future__ import annotations

import sys
from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from querykit.filtering.field_paths import clear_field_registries  # noqa: E402
from tests.models import Base, Owner, Pet, Species, Tag  # noqa: E402

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0)


# This fixture ensures async fixtures work with AnyIO's pytest plugin.
@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_field_registries() -> Generator[None, None, None]:
    """Aliases registered by one test must not leak into the next."""
    clear_field_registries()
    yield
    clear_field_registries()


# ============================================================================
# Test Database Setup
# ============================================================================


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the test schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def async_db_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Async session against the per-test database."""
    session_maker = async_sessionmaker(
        bind=async_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    async with session_maker() as session:
        yield session


# ============================================================================
# Test Data Factories
# ============================================================================


async def acreate_owner_in_db(db: AsyncSession, **overrides: Any) -> Owner:
    """Create an Owner using AsyncSession."""
    data: dict[str, Any] = {"name": "Alice", "city": "Lyon", "created_at": BASE_TIME}
    data.update(overrides)
    owner = Owner(**data)
    db.add(owner)
    await db.commit()
    return owner


async def acreate_pet_in_db(db: AsyncSession, **overrides: Any) -> Pet:
    """Create a Pet using AsyncSession."""
    data: dict[str, Any] = {
        "name": "Rex",
        "species": Species.DOG,
        "age": 3,
        "weight": 12.5,
        "is_vaccinated": True,
        "rank": 0,
        "created_at": BASE_TIME,
    }
    data.update(overrides)
    pet = Pet(**data)
    db.add(pet)
    await db.commit()
    return pet


async def acreate_ranked_pets(db: AsyncSession, count: int) -> list[Pet]:
    """Create ``count`` pets ranked 1..count, created one minute apart."""
    pets = [
        Pet(
            name=f"Pet {rank:02d}",
            species=Species.CAT if rank % 2 else Species.DOG,
            age=rank,
            weight=float(rank),
            rank=rank,
            created_at=BASE_TIME + timedelta(minutes=rank),
        )
        for rank in range(1, count + 1)
    ]
    db.add_all(pets)
    await db.commit()
    return pets


async def acreate_tag_in_db(db: AsyncSession, label: str) -> Tag:
    """Create a Tag using AsyncSession."""
    tag = Tag(label=label)
    db.add(tag)
    await db.commit()
    return tag


@pytest.fixture
async def adb_owner(async_db_session: AsyncSession) -> Owner:
    """Async fixture creating an Owner."""
    return await acreate_owner_in_db(async_db_session)


@pytest.fixture
async def adb_pet(async_db_session: AsyncSession, adb_owner: Owner) -> Pet:
    """Async fixture creating a Pet owned by ``adb_owner``."""
    return await acreate_pet_in_db(async_db_session, owner_id=adb_owner.id)
