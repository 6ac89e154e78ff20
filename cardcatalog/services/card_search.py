"""
Card search service.

Multi-field search over the synced catalog.

Supports queries like:
- "bolt" -> every card whose name or alternate name contains "bolt"
- set_code="m21" -> everything printed in M21
- type_line="goblin" -> creatures with the Goblin subtype, and Goblin tribal

All filters are ANDed together. By default results are deduplicated to one
printing per logical card (group_id). The representative is a printing
without an alternate name when the group has one, so a search that only
matched a crossover printing's alternate name still returns the card under
its canonical name. In that case the alternate name and the matched
printing's image are attached to the result as match provenance.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from typing import Any

from sqlalchemy import ColumnElement, Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from cardcatalog.config import settings
from cardcatalog.models.card import Face, pick_image
from cardcatalog.models.db import CardPrintingDB
from cardcatalog.models.failure import FailureKind, SearchRequestError

logger = logging.getLogger(__name__)

_ORDERING = (CardPrintingDB.name, CardPrintingDB.set_code, CardPrintingDB.collector_number)


@dataclass(frozen=True)
class SearchRequest:
    """
    A catalog search.

    Attributes:
        name: Substring of the name or alternate name (case-insensitive)
        set_code: Exact set code (case-insensitive)
        type_line: Substring of the type line (case-insensitive)
        deduplicate: Collapse printings of one card into a single result
        page: 1-based page number
        page_size: Results per page
    """

    name: str | None = None
    set_code: str | None = None
    type_line: str | None = None
    deduplicate: bool = True
    page: int = 1
    page_size: int = field(default_factory=lambda: settings.search_default_page_size)

    def validated(self, max_page_size: int | None = None) -> "SearchRequest":
        """
        Return a normalized copy with filters trimmed and blanks removed.

        Raises:
            SearchRequestError: If no filter is set or pagination is out of bounds.
        """
        max_page_size = max_page_size or settings.search_max_page_size

        normalized = replace(
            self,
            name=_clean(self.name),
            set_code=_clean(self.set_code),
            type_line=_clean(self.type_line),
        )

        if not (normalized.name or normalized.set_code or normalized.type_line):
            raise SearchRequestError(
                "At least one search parameter is required: "
                "q (name), set (set code), or type (type line).",
                kind=FailureKind.MISSING_REQUIRED,
            )
        if self.page < 1:
            raise SearchRequestError("Page number must be at least 1.")
        if self.page_size < 1 or self.page_size > max_page_size:
            raise SearchRequestError(f"Page size must be between 1 and {max_page_size}.")

        return normalized


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class CardSearchResult:
    """A printing matching search criteria, shaped for display."""

    id: uuid.UUID
    external_id: uuid.UUID
    group_id: uuid.UUID
    name: str
    alternate_name: str | None
    set_code: str
    collector_number: str
    rarity: str
    mana_cost: str | None
    mana_value: float
    type_line: str
    rule_text: str | None
    power: str | None
    toughness: str | None
    colors: list[str] | None
    finishes: list[str] | None
    image_uri: str | None
    is_multi_faced: bool
    faces: list[Face] | None
    arena_id: int | None
    mtgo_id: int | None
    matched_alternate_name: str | None = None
    matched_image_reference: str | None = None


@dataclass
class SearchPage:
    """One page of search results plus totals over the whole filtered set."""

    results: list[CardSearchResult]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    deduplicate: bool
    query: str = ""


@dataclass(frozen=True)
class MatchProvenance:
    """Why a deduplicated result matched when its own name did not."""

    alternate_name: str
    image_reference: str | None


def _contains(column: Any, needle: str) -> ColumnElement[bool]:
    return func.lower(column).contains(needle.lower(), autoescape=True)


def _filter_conditions(request: SearchRequest) -> list[ColumnElement[bool]]:
    conditions: list[ColumnElement[bool]] = []
    if request.name:
        conditions.append(
            or_(
                _contains(CardPrintingDB.name, request.name),
                _contains(CardPrintingDB.alternate_name, request.name),
            )
        )
    if request.set_code:
        conditions.append(func.lower(CardPrintingDB.set_code) == request.set_code.lower())
    if request.type_line:
        conditions.append(_contains(CardPrintingDB.type_line, request.type_line))
    return conditions


def _stored_primary_image(
    image_references: dict[str, str] | None,
    faces: list[dict[str, Any]] | None,
) -> str | None:
    """Front face image for multi-faced printings, else the top-level reference."""
    if faces:
        return faces[0].get("image_uri")
    return pick_image(image_references)


def _to_result(row: CardPrintingDB, provenance: MatchProvenance | None = None) -> CardSearchResult:
    return CardSearchResult(
        id=row.id,
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
        colors=list(row.colors) if row.colors is not None else None,
        finishes=list(row.finishes) if row.finishes is not None else None,
        image_uri=_stored_primary_image(row.image_references, row.faces),
        is_multi_faced=bool(row.faces),
        faces=[Face.from_dict(face) for face in row.faces] if row.faces else None,
        arena_id=row.arena_id,
        mtgo_id=row.mtgo_id,
        matched_alternate_name=provenance.alternate_name if provenance else None,
        matched_image_reference=provenance.image_reference if provenance else None,
    )


@dataclass(frozen=True)
class GroupMember:
    """Lightweight projection of one printing inside a matching group."""

    position: int
    id: uuid.UUID
    group_id: uuid.UUID
    name: str
    alternate_name: str | None
    image_reference: str | None


def select_representatives(
    members: list[GroupMember],
    name_query: str | None,
) -> list[tuple[GroupMember, MatchProvenance | None]]:
    """
    Pick one printing per group and explain alternate-name matches.

    Args:
        members: Every printing of every matching group, in result order
        name_query: The name filter, if any

    Returns:
        (representative, provenance) pairs, in result order.
    """
    groups: dict[uuid.UUID, list[GroupMember]] = {}
    for member in members:
        groups.setdefault(member.group_id, []).append(member)

    needle = name_query.lower() if name_query else None
    chosen: list[tuple[GroupMember, MatchProvenance | None]] = []

    for group in groups.values():
        representative = next((m for m in group if not m.alternate_name), group[0])

        provenance = None
        if needle and needle not in representative.name.lower():
            matched = next(
                (
                    m
                    for m in group
                    if m.alternate_name and needle in m.alternate_name.lower()
                ),
                None,
            )
            if matched is not None and matched.alternate_name:
                provenance = MatchProvenance(matched.alternate_name, matched.image_reference)

        chosen.append((representative, provenance))

    chosen.sort(key=lambda pair: pair[0].position)
    return chosen


def _page_bounds(request: SearchRequest) -> tuple[int, int]:
    start = (request.page - 1) * request.page_size
    return start, start + request.page_size


async def _search_all_printings(
    session: AsyncSession,
    request: SearchRequest,
    conditions: list[ColumnElement[bool]],
) -> tuple[list[CardSearchResult], int]:
    total = await session.scalar(
        select(func.count()).select_from(CardPrintingDB).where(*conditions)
    )

    start, _ = _page_bounds(request)
    stmt: Select[tuple[CardPrintingDB]] = (
        select(CardPrintingDB)
        .where(*conditions)
        .order_by(*_ORDERING)
        .offset(start)
        .limit(request.page_size)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return [_to_result(row) for row in rows], int(total or 0)


async def _search_deduplicated(
    session: AsyncSession,
    request: SearchRequest,
    conditions: list[ColumnElement[bool]],
) -> tuple[list[CardSearchResult], int]:
    # Step 1: groups with at least one matching printing
    matching_groups = select(CardPrintingDB.group_id).where(*conditions).distinct()

    # Step 2: every printing of those groups, not only the matching ones
    stmt = (
        select(
            CardPrintingDB.id,
            CardPrintingDB.group_id,
            CardPrintingDB.name,
            CardPrintingDB.alternate_name,
            CardPrintingDB.image_references,
            CardPrintingDB.faces,
        )
        .where(CardPrintingDB.group_id.in_(matching_groups))
        .order_by(*_ORDERING)
    )
    members = [
        GroupMember(
            position=position,
            id=row.id,
            group_id=row.group_id,
            name=row.name,
            alternate_name=row.alternate_name,
            image_reference=_stored_primary_image(row.image_references, row.faces),
        )
        for position, row in enumerate(await session.execute(stmt))
    ]

    # Steps 3 and 4: representative and provenance per group
    chosen = select_representatives(members, request.name)

    start, end = _page_bounds(request)
    page = chosen[start:end]
    if not page:
        return [], len(chosen)

    page_ids = [member.id for member, _ in page]
    rows = await session.execute(select(CardPrintingDB).where(CardPrintingDB.id.in_(page_ids)))
    by_id = {row.id: row for row in rows.scalars().all()}

    results = [
        _to_result(by_id[member.id], provenance)
        for member, provenance in page
        if member.id in by_id
    ]
    return results, len(chosen)


async def search_cards(session: AsyncSession, request: SearchRequest) -> SearchPage:
    """
    Search the catalog.

    Args:
        session: Database session (read-only use)
        request: Search parameters, validated here

    Returns:
        SearchPage for the requested page. An empty result is a valid page.

    Raises:
        SearchRequestError: If the request has no filter or bad pagination
    """
    request = request.validated()
    conditions = _filter_conditions(request)

    if request.deduplicate:
        results, total = await _search_deduplicated(session, request, conditions)
    else:
        results, total = await _search_all_printings(session, request, conditions)

    logger.debug(
        "Search name=%r set=%r type=%r dedup=%s -> %d total",
        request.name,
        request.set_code,
        request.type_line,
        request.deduplicate,
        total,
    )

    return SearchPage(
        results=results,
        total_count=total,
        page=request.page,
        page_size=request.page_size,
        total_pages=math.ceil(total / request.page_size),
        deduplicate=request.deduplicate,
        query=request.name or "",
    )
