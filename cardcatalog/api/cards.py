"""
Card search API endpoints.

Card data is public; no authentication is required to search.
"""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardcatalog.config import settings
from cardcatalog.db import get_printing, row_to_printing
from cardcatalog.db.database import get_session
from cardcatalog.models.failure import FailureDetail, PrintingNotFoundError
from cardcatalog.services.card_search import SearchRequest, search_cards

router = APIRouter(prefix="/api/cards", tags=["cards"])


class CardFaceResponse(BaseModel):
    """One face of a multi-faced card."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    mana_cost: str | None = None
    type_line: str
    rule_text: str | None = None
    power: str | None = None
    toughness: str | None = None
    image_uri: str
    colors: list[str] = Field(default_factory=list)


class CardResponse(BaseModel):
    """A single printing, shaped for display."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(..., description="Local id; use this to reference the printing")
    external_id: uuid.UUID
    group_id: uuid.UUID = Field(..., description="Shared by every printing of the same card")
    name: str
    alternate_name: str | None = Field(
        default=None,
        description="Cosmetic name on special printings (e.g. crossover showcase cards)",
    )
    set_code: str
    collector_number: str
    rarity: str
    mana_cost: str | None = None
    mana_value: float = 0.0
    type_line: str
    rule_text: str | None = None
    power: str | None = None
    toughness: str | None = None
    colors: list[str] | None = None
    finishes: list[str] | None = None
    image_uri: str | None = Field(
        default=None,
        description="Primary image; the front face for multi-faced cards",
    )
    is_multi_faced: bool = False
    faces: list[CardFaceResponse] | None = None
    arena_id: int | None = None
    mtgo_id: int | None = None


class CardSearchResultResponse(CardResponse):
    """A search hit, with match provenance for deduplicated searches."""

    matched_alternate_name: str | None = Field(
        default=None,
        description="Alternate name of another printing that matched the query, "
        "when this result's own name did not",
    )
    matched_image_reference: str | None = Field(
        default=None,
        description="Image of the printing whose alternate name matched",
    )


class CardSearchResponse(BaseModel):
    """Paginated card search results."""

    model_config = ConfigDict(from_attributes=True)

    results: list[CardSearchResultResponse] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 0
    total_pages: int = 0
    deduplicate: bool = True
    query: str = Field(default="", description="Trimmed name query, empty if none")


@router.get(
    "",
    response_model=CardSearchResponse,
    responses={400: {"model": FailureDetail}},
)
async def search(
    session: Annotated[AsyncSession, Depends(get_session)],
    q: Annotated[str | None, Query(description="Name or alternate name, partial")] = None,
    set_code: Annotated[str | None, Query(alias="set", description="Exact set code")] = None,
    type_line: Annotated[str | None, Query(alias="type", description="Type line, partial")] = None,
    deduplicate: bool = True,
    page: int = 1,
    page_size: int = settings.search_default_page_size,
) -> CardSearchResponse:
    """
    Search cards by name, set, or type line.

    At least one of q, set, type is required. Invalid page or page size
    values are rejected, never clamped. With deduplicate (default) each
    card appears once regardless of how many printings matched.
    """
    result = await search_cards(
        session,
        SearchRequest(
            name=q,
            set_code=set_code,
            type_line=type_line,
            deduplicate=deduplicate,
            page=page,
            page_size=page_size,
        ),
    )
    return CardSearchResponse.model_validate(result)


@router.get(
    "/{local_id}",
    response_model=CardResponse,
    responses={404: {"model": FailureDetail}},
)
async def get_card(
    local_id: uuid.UUID,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardResponse:
    """Get one printing by local id."""
    row = await get_printing(session, local_id)
    if row is None:
        raise PrintingNotFoundError(local_id)

    printing = row_to_printing(row)
    return CardResponse(
        id=row.id,
        external_id=printing.external_id,
        group_id=printing.group_id,
        name=printing.name,
        alternate_name=printing.alternate_name,
        set_code=printing.set_code,
        collector_number=printing.collector_number,
        rarity=printing.rarity,
        mana_cost=printing.mana_cost,
        mana_value=printing.mana_value,
        type_line=printing.type_line,
        rule_text=printing.rule_text,
        power=printing.power,
        toughness=printing.toughness,
        colors=list(printing.colors),
        finishes=list(printing.finishes) if printing.finishes is not None else None,
        image_uri=printing.primary_image(),
        is_multi_faced=printing.is_multi_faced,
        faces=[CardFaceResponse.model_validate(face) for face in printing.faces] or None,
        arena_id=printing.arena_id,
        mtgo_id=printing.mtgo_id,
    )
