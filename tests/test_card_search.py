"""Tests for the card search service."""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardcatalog.db.operations import write_plan
from cardcatalog.models.failure import FailureKind, SearchRequestError
from cardcatalog.services.card_search import (
    GroupMember,
    SearchRequest,
    search_cards,
    select_representatives,
)
from cardcatalog.services.reconciliation import IdentityIndex, plan_reconciliation

BRUSHWAGG_GROUP = uuid.UUID("0c1f3e8e-5a3e-4d6b-9d67-2ad1b6d2b8c4")


async def seed(session_factory: async_sessionmaker[AsyncSession], printings) -> None:
    plan = plan_reconciliation(printings, IdentityIndex())
    await write_plan(session_factory, plan, batch_size=100)


@pytest.fixture
async def bolt_catalog(session_factory, printing_factory) -> None:
    """Two printings of Lightning Bolt and an unrelated goblin."""
    await seed(
        session_factory,
        [
            printing_factory(set_code="m21", collector_number="123"),
            printing_factory(set_code="lea", collector_number="161", rarity="common"),
            printing_factory(
                name="Goblin Guide",
                set_code="zen",
                collector_number="126",
                group_id=uuid.uuid4(),
                type_line="Creature — Goblin Scout",
                rarity="rare",
            ),
        ],
    )


@pytest.fixture
async def crossover_catalog(session_factory, printing_factory) -> None:
    """One card with two plain printings and one crossover printing."""
    await seed(
        session_factory,
        [
            printing_factory(
                name="Brushwagg", set_code="mir", collector_number="102", group_id=BRUSHWAGG_GROUP
            ),
            printing_factory(
                name="Brushwagg",
                set_code="sld",
                collector_number="900",
                group_id=BRUSHWAGG_GROUP,
                alternate_name="Hatchling of the Ashes",
                image_references={"normal": "https://img.example/hatchling.jpg"},
            ),
            printing_factory(
                name="Brushwagg", set_code="vis", collector_number="97", group_id=BRUSHWAGG_GROUP
            ),
        ],
    )


class TestSearchRequestValidation:
    def test_requires_a_filter(self) -> None:
        with pytest.raises(SearchRequestError) as exc_info:
            SearchRequest().validated()

        assert exc_info.value.kind == FailureKind.MISSING_REQUIRED
        assert exc_info.value.status_code == 400

    def test_blank_filters_count_as_missing(self) -> None:
        with pytest.raises(SearchRequestError):
            SearchRequest(name="   ", set_code="", type_line="\t").validated()

    def test_filters_trimmed(self) -> None:
        request = SearchRequest(name="  bolt ", set_code=" M21").validated()

        assert request.name == "bolt"
        assert request.set_code == "M21"

    @pytest.mark.parametrize("page", [0, -1])
    def test_page_below_one_rejected(self, page: int) -> None:
        with pytest.raises(SearchRequestError, match="Page number"):
            SearchRequest(name="bolt", page=page).validated()

    @pytest.mark.parametrize("page_size", [0, 101])
    def test_page_size_out_of_bounds_rejected(self, page_size: int) -> None:
        """Out-of-range page sizes are rejected, never clamped."""
        with pytest.raises(SearchRequestError, match="Page size"):
            SearchRequest(name="bolt", page_size=page_size).validated(max_page_size=100)


class TestSelectRepresentatives:
    def member(self, position: int, group: uuid.UUID, alternate: str | None = None) -> GroupMember:
        return GroupMember(
            position=position,
            id=uuid.uuid4(),
            group_id=group,
            name="Brushwagg",
            alternate_name=alternate,
            image_reference=f"https://img.example/{position}.jpg",
        )

    def test_prefers_printing_without_alternate_name(self) -> None:
        group = uuid.uuid4()
        members = [
            self.member(0, group, alternate="Hatchling of the Ashes"),
            self.member(1, group),
        ]

        [(representative, provenance)] = select_representatives(members, None)

        assert representative.position == 1
        assert provenance is None

    def test_falls_back_to_first_when_all_alternate(self) -> None:
        group = uuid.uuid4()
        members = [self.member(0, group, "Alpha"), self.member(1, group, "Beta")]

        [(representative, _)] = select_representatives(members, None)

        assert representative.position == 0

    def test_results_follow_representative_order(self) -> None:
        first, second = uuid.uuid4(), uuid.uuid4()
        members = [
            self.member(0, second, alternate="Crossover"),
            self.member(1, first),
            self.member(2, second),
        ]

        chosen = select_representatives(members, None)

        assert [rep.position for rep, _ in chosen] == [1, 2]


class TestSearchCards:
    async def test_scenario_deduplicated(self, session: AsyncSession, bolt_catalog) -> None:
        """Two printings of one card collapse to a single result."""
        page = await search_cards(session, SearchRequest(name="bolt"))

        assert page.total_count == 1
        assert [r.name for r in page.results] == ["Lightning Bolt"]
        assert page.deduplicate is True
        assert page.query == "bolt"

    async def test_scenario_all_printings(self, session: AsyncSession, bolt_catalog) -> None:
        """Without deduplication every printing is returned, lea before m21."""
        page = await search_cards(session, SearchRequest(name="bolt", deduplicate=False))

        assert page.total_count == 2
        assert [r.set_code for r in page.results] == ["lea", "m21"]

    async def test_name_case_insensitive(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(name="LIGHTNING"))

        assert page.total_count == 1

    async def test_set_filter_exact_and_case_insensitive(
        self, session: AsyncSession, bolt_catalog
    ) -> None:
        page = await search_cards(session, SearchRequest(set_code="LEA", deduplicate=False))

        assert [(r.set_code, r.collector_number) for r in page.results] == [("lea", "161")]

    async def test_set_filter_is_not_substring(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(set_code="le"))

        assert page.total_count == 0

    async def test_type_filter(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(type_line="goblin"))

        assert [r.name for r in page.results] == ["Goblin Guide"]

    async def test_filters_are_anded(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(name="bolt", type_line="creature"))

        assert page.total_count == 0

    async def test_like_wildcards_are_literal(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(name="%"))

        assert page.total_count == 0

    async def test_zero_results_is_a_valid_page(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(name="nonexistent"))

        assert page.results == []
        assert page.total_count == 0
        assert page.total_pages == 0

    async def test_result_shape(self, session: AsyncSession, bolt_catalog) -> None:
        page = await search_cards(session, SearchRequest(set_code="m21", deduplicate=False))

        [result] = page.results
        assert result.image_uri == "https://img.example/m21/123/normal.jpg"
        assert result.is_multi_faced is False
        assert result.faces is None
        assert result.colors == ["R"]
        assert result.finishes == ["nonfoil", "foil"]
        assert result.matched_alternate_name is None

    async def test_multi_faced_result(
        self, session: AsyncSession, session_factory, printing_factory, face_factory
    ) -> None:
        """Multi-faced printings show the front face image."""
        await seed(
            session_factory,
            [
                printing_factory(
                    name="Delver of Secrets // Insectile Aberration",
                    set_code="isd",
                    collector_number="51",
                    group_id=uuid.uuid4(),
                    image_references=None,
                    faces=(
                        face_factory("Delver of Secrets", image="https://img.example/front.jpg"),
                        face_factory("Insectile Aberration", image="https://img.example/back.jpg"),
                    ),
                )
            ],
        )

        page = await search_cards(session, SearchRequest(name="delver"))

        [result] = page.results
        assert result.is_multi_faced is True
        assert result.image_uri == "https://img.example/front.jpg"
        assert result.faces is not None
        assert [face.name for face in result.faces] == [
            "Delver of Secrets",
            "Insectile Aberration",
        ]


class TestDeduplication:
    async def test_representative_lacks_alternate_name(
        self, session: AsyncSession, crossover_catalog
    ) -> None:
        """Of three printings, one with an alternate name, a plain one is returned."""
        page = await search_cards(session, SearchRequest(name="brushwagg"))

        [result] = page.results
        assert result.alternate_name is None
        assert result.set_code in {"mir", "vis"}

    async def test_alternate_name_match_surfaces_provenance(
        self, session: AsyncSession, crossover_catalog
    ) -> None:
        """A match only on the alternate name returns the canonical card plus provenance."""
        page = await search_cards(session, SearchRequest(name="hatchling"))

        [result] = page.results
        assert result.name == "Brushwagg"
        assert result.alternate_name is None
        assert result.matched_alternate_name == "Hatchling of the Ashes"
        assert result.matched_image_reference == "https://img.example/hatchling.jpg"

    async def test_no_provenance_when_name_matches(
        self, session: AsyncSession, crossover_catalog
    ) -> None:
        page = await search_cards(session, SearchRequest(name="wagg"))

        [result] = page.results
        assert result.matched_alternate_name is None
        assert result.matched_image_reference is None

    async def test_alternate_name_match_without_dedup(
        self, session: AsyncSession, crossover_catalog
    ) -> None:
        """Without deduplication the crossover printing itself is returned."""
        page = await search_cards(session, SearchRequest(name="hatchling", deduplicate=False))

        [result] = page.results
        assert result.alternate_name == "Hatchling of the Ashes"
        assert result.matched_alternate_name is None

    async def test_representative_may_come_from_outside_filter(
        self, session: AsyncSession, crossover_catalog
    ) -> None:
        """The group is matched by the filter; its representative is chosen from all printings."""
        page = await search_cards(session, SearchRequest(set_code="sld"))

        [result] = page.results
        assert result.set_code == "mir"


class TestPagination:
    @pytest.fixture
    async def goblins(self, session_factory, printing_factory) -> None:
        await seed(
            session_factory,
            [
                printing_factory(
                    name=f"Goblin {n:02d}",
                    set_code="m21",
                    collector_number=str(n),
                    group_id=uuid.uuid4(),
                    type_line="Creature — Goblin",
                )
                for n in reversed(range(25))
            ],
        )

    @pytest.mark.parametrize("deduplicate", [True, False])
    async def test_same_page_twice_is_identical(
        self, session: AsyncSession, goblins, deduplicate: bool
    ) -> None:
        request = SearchRequest(type_line="goblin", page=2, page_size=10, deduplicate=deduplicate)

        first = await search_cards(session, request)
        second = await search_cards(session, request)

        assert [r.id for r in first.results] == [r.id for r in second.results]
        assert len(first.results) == 10

    @pytest.mark.parametrize("deduplicate", [True, False])
    async def test_pages_concatenate_to_sorted_sequence(
        self, session: AsyncSession, goblins, deduplicate: bool
    ) -> None:
        names: list[str] = []
        for page_number in (1, 2, 3):
            page = await search_cards(
                session,
                SearchRequest(
                    type_line="goblin",
                    page=page_number,
                    page_size=10,
                    deduplicate=deduplicate,
                ),
            )
            assert page.total_count == 25
            assert page.total_pages == 3
            names.extend(r.name for r in page.results)

        assert names == [f"Goblin {n:02d}" for n in range(25)]

    async def test_page_past_the_end_is_empty(self, session: AsyncSession, goblins) -> None:
        page = await search_cards(session, SearchRequest(type_line="goblin", page=9, page_size=10))

        assert page.results == []
        assert page.total_count == 25
