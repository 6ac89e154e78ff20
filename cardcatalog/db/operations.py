"""
Database operations for the card catalog.

Provides conversion between CardPrinting and its ORM row, the identity
projection used by reconciliation, batched writes, catalog statistics and
lookups by local id.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardcatalog.models.card import CardPrinting, Face
from cardcatalog.models.db import CardPrintingDB
from cardcatalog.models.failure import DataIntegrityError
from cardcatalog.models.sync import CatalogStats
from cardcatalog.services.reconciliation import (
    IdentityIndex,
    ReconciliationPlan,
    StoredIdentity,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# --- Conversion ---


def apply_printing(row: CardPrintingDB, printing: CardPrinting) -> CardPrintingDB:
    """
    Copy every upstream-derived field of a printing onto a row.

    Leaves id and created_at alone: those belong to the row.
    """
    row.external_id = printing.external_id
    row.group_id = printing.group_id
    row.name = printing.name
    row.alternate_name = printing.alternate_name
    row.set_code = printing.set_code
    row.collector_number = printing.collector_number
    row.rarity = printing.rarity
    row.mana_cost = printing.mana_cost
    row.mana_value = printing.mana_value
    row.type_line = printing.type_line
    row.rule_text = printing.rule_text
    row.power = printing.power
    row.toughness = printing.toughness
    row.colors = list(printing.colors)
    row.finishes = list(printing.finishes) if printing.finishes is not None else None
    row.legalities = dict(printing.legalities) or None
    row.image_references = dict(printing.image_references) if printing.image_references else None
    row.faces = [face.to_dict() for face in printing.faces] or None
    row.arena_id = printing.arena_id
    row.mtgo_id = printing.mtgo_id
    return row


def printing_to_row(printing: CardPrinting, now: datetime | None = None) -> CardPrintingDB:
    """Build a new row for a printing that has been assigned a local id."""
    if printing.local_id is None:
        raise ValueError(f"Printing {printing.external_id} has no local id")
    now = now or datetime.now(UTC)
    row = CardPrintingDB(id=printing.local_id, created_at=now, updated_at=now)
    return apply_printing(row, printing)


def row_to_printing(row: CardPrintingDB) -> CardPrinting:
    """Convert a database row to a domain model."""
    return CardPrinting(
        local_id=row.id,
        external_id=row.external_id,
        group_id=row.group_id,
        name=row.name,
        alternate_name=row.alternate_name,
        set_code=row.set_code,
        collector_number=row.collector_number,
        rarity=row.rarity,
        mana_cost=row.mana_cost,
        mana_value=row.mana_value,
        type_line=row.type_line,
        rule_text=row.rule_text,
        power=row.power,
        toughness=row.toughness,
        colors=tuple(row.colors or ()),
        finishes=tuple(row.finishes) if row.finishes is not None else None,
        legalities=dict(row.legalities or {}),
        image_references=dict(row.image_references) if row.image_references else None,
        faces=tuple(Face.from_dict(face) for face in row.faces or ()),
        arena_id=row.arena_id,
        mtgo_id=row.mtgo_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# --- Reads ---


async def load_identity_index(session: AsyncSession) -> IdentityIndex:
    """
    Load the reconciliation keys of every stored printing.

    Only the identity projection is selected, never the full rows.
    """
    result = await session.execute(
        select(
            CardPrintingDB.id,
            CardPrintingDB.external_id,
            CardPrintingDB.set_code,
            CardPrintingDB.collector_number,
            CardPrintingDB.created_at,
        )
    )
    return IdentityIndex(
        StoredIdentity(
            local_id=row.id,
            external_id=row.external_id,
            set_code=row.set_code,
            collector_number=row.collector_number,
            created_at=row.created_at,
        )
        for row in result
    )


async def get_printing(session: AsyncSession, local_id: uuid.UUID) -> CardPrintingDB | None:
    """
    Get a printing by its local id.

    Returns None if no such printing is stored.
    """
    return await session.get(CardPrintingDB, local_id)


async def collect_catalog_stats(session: AsyncSession) -> CatalogStats:
    """Count stored printings, distinct groups, multi-faced and platform coverage."""
    result = await session.execute(
        select(
            func.count(CardPrintingDB.id),
            func.count(func.distinct(CardPrintingDB.group_id)),
            func.count(CardPrintingDB.faces),
            func.count(CardPrintingDB.finishes),
            func.count(CardPrintingDB.arena_id),
            func.count(CardPrintingDB.mtgo_id),
        )
    )
    total, groups, multi_faced, with_finishes, arena, mtgo = result.one()
    return CatalogStats(
        total=total,
        distinct_groups=groups,
        multi_faced=multi_faced,
        with_finishes=with_finishes,
        arena=arena,
        mtgo=mtgo,
    )


# --- Writes ---


async def insert_printings(session: AsyncSession, printings: Sequence[CardPrinting]) -> int:
    """Add new rows for reconciled printings. Returns the number added."""
    now = datetime.now(UTC)
    session.add_all(printing_to_row(printing, now) for printing in printings)
    await session.flush()
    return len(printings)


async def update_printings(session: AsyncSession, printings: Sequence[CardPrinting]) -> int:
    """
    Update stored rows in place from reconciled printings.

    Rows are matched on local_id; created_at is never touched.
    """
    by_id = {printing.local_id: printing for printing in printings}
    result = await session.execute(
        select(CardPrintingDB).where(CardPrintingDB.id.in_(list(by_id)))
    )
    rows = list(result.scalars().all())

    if len(rows) != len(by_id):
        found = {row.id for row in rows}
        missing = [str(local_id) for local_id in by_id if local_id not in found]
        msg = f"{len(missing)} reconciled printing(s) no longer stored"
        raise DataIntegrityError(msg, detail=", ".join(missing[:10]))

    now = datetime.now(UTC)
    for row in rows:
        apply_printing(row, by_id[row.id])
        row.updated_at = now

    await session.flush()
    return len(rows)


async def park_moved_printings(session: AsyncSession, local_ids: Sequence[uuid.UUID]) -> int:
    """
    Move rows onto a temporary collector number unique to each row.

    A row whose (set_code, collector_number) changes must vacate its old key
    before another row can take it, e.g. two printings swapping numbers.
    """
    result = await session.execute(
        select(CardPrintingDB).where(CardPrintingDB.id.in_(list(local_ids)))
    )
    rows = list(result.scalars().all())
    for row in rows:
        row.collector_number = row.id.hex
    await session.flush()
    return len(rows)


def _batches(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


async def _write_batches(
    session_factory: async_sessionmaker[AsyncSession],
    items: Sequence[T],
    batch_size: int,
    write: Callable[[AsyncSession, Sequence[T]], Awaitable[int]],
    action: str,
) -> int:
    done = 0
    for batch in _batches(items, batch_size):
        try:
            async with session_factory() as session, session.begin():
                done += await write(session, batch)
        except IntegrityError as e:
            msg = f"{action.capitalize()} batch at {done} violated a uniqueness constraint"
            raise DataIntegrityError(msg, detail=str(e.orig)) from e
        logger.info("%s: %d / %d printings", action, done, len(items))
    return done


async def write_plan(
    session_factory: async_sessionmaker[AsyncSession],
    plan: ReconciliationPlan,
    batch_size: int,
) -> tuple[int, int]:
    """
    Apply a reconciliation plan in bounded transactions.

    Rows whose set/number changes are parked on a temporary key first, then
    updates are applied, then inserts, so no write lands on a key that is
    still held by a row about to move. Each batch commits on its own, so a
    failure leaves earlier batches in place; re-running the sync resumes
    from there (a parked row still matches by external id).

    Returns:
        Tuple of (inserted, updated)

    Raises:
        DataIntegrityError: If a batch violates a uniqueness constraint
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")

    await _write_batches(session_factory, plan.moved, batch_size, park_moved_printings, "park")
    updated = await _write_batches(
        session_factory, plan.updates, batch_size, update_printings, "update"
    )
    inserted = await _write_batches(
        session_factory, plan.inserts, batch_size, insert_printings, "insert"
    )
    return inserted, updated
