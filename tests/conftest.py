import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from cardcatalog.db.database import drop_db, init_db
from cardcatalog.models.card import CardPrinting, Face

BOLT_GROUP = uuid.UUID("4457ed35-7c10-48c8-9776-456485fdf070")


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    await init_db(engine)
    yield engine
    await drop_db(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


def make_printing(
    name: str = "Lightning Bolt",
    set_code: str = "m21",
    collector_number: str = "123",
    group_id: uuid.UUID | None = None,
    external_id: uuid.UUID | None = None,
    **overrides: Any,
) -> CardPrinting:
    """Build a single-faced printing with sensible defaults."""
    fields: dict[str, Any] = {
        "external_id": external_id or uuid.uuid4(),
        "group_id": group_id or BOLT_GROUP,
        "name": name,
        "set_code": set_code,
        "collector_number": collector_number,
        "rarity": "common",
        "type_line": "Instant",
        "mana_cost": "{R}",
        "mana_value": 1.0,
        "rule_text": "Lightning Bolt deals 3 damage to any target.",
        "colors": ("R",),
        "finishes": ("nonfoil", "foil"),
        "legalities": {"modern": "legal"},
        "image_references": {
            "normal": f"https://img.example/{set_code}/{collector_number}/normal.jpg",
            "small": f"https://img.example/{set_code}/{collector_number}/small.jpg",
        },
    }
    fields.update(overrides)
    return CardPrinting(**fields)


def make_face(name: str, type_line: str = "Creature — Human", image: str | None = None) -> Face:
    return Face(
        name=name,
        type_line=type_line,
        image_uri=image or f"https://img.example/faces/{name.lower().replace(' ', '-')}.jpg",
    )


def make_record(
    name: str = "Lightning Bolt",
    set_code: str = "m21",
    collector_number: str = "123",
    **overrides: Any,
) -> dict[str, Any]:
    """Build a raw single-faced Scryfall record."""
    record: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "oracle_id": str(BOLT_GROUP),
        "name": name,
        "set": set_code,
        "collector_number": collector_number,
        "rarity": "common",
        "layout": "normal",
        "mana_cost": "{R}",
        "cmc": 1.0,
        "type_line": "Instant",
        "oracle_text": "Lightning Bolt deals 3 damage to any target.",
        "colors": ["R"],
        "color_identity": ["R"],
        "finishes": ["nonfoil", "foil"],
        "legalities": {"modern": "legal", "standard": "not_legal"},
        "image_uris": {
            "small": "https://img.example/small.jpg",
            "normal": "https://img.example/normal.jpg",
            "large": "https://img.example/large.jpg",
        },
    }
    record.update(overrides)
    return record


@pytest.fixture
def printing_factory():
    """Factory for canonical printings."""
    return make_printing


@pytest.fixture
def face_factory():
    """Factory for card faces."""
    return make_face


@pytest.fixture
def record_factory():
    """Factory for raw upstream records."""
    return make_record
