"""Tests for card search API endpoints."""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from cardcatalog.db.database import get_session
from cardcatalog.db.operations import write_plan
from cardcatalog.main import app
from cardcatalog.services.reconciliation import IdentityIndex, plan_reconciliation


@pytest.fixture
async def client(session_factory):
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def catalog(session_factory, printing_factory, face_factory) -> dict[str, uuid.UUID]:
    """Seed a small catalog. Returns local ids by set code."""
    plan = plan_reconciliation(
        [
            printing_factory(set_code="m21", collector_number="123"),
            printing_factory(set_code="lea", collector_number="161"),
            printing_factory(
                name="Delver of Secrets // Insectile Aberration",
                set_code="isd",
                collector_number="51",
                group_id=uuid.uuid4(),
                type_line="Creature — Human Wizard // Creature — Human Insect",
                image_references=None,
                faces=(
                    face_factory("Delver of Secrets", image="https://img.example/front.jpg"),
                    face_factory("Insectile Aberration", image="https://img.example/back.jpg"),
                ),
            ),
        ],
        IdentityIndex(),
    )
    await write_plan(session_factory, plan, batch_size=100)
    return {p.set_code: p.local_id for p in plan.inserts}


class TestSearchEndpoint:
    async def test_deduplicated_search(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"q": "bolt"})

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 1
        assert data["total_pages"] == 1
        assert data["deduplicate"] is True
        assert data["query"] == "bolt"
        [result] = data["results"]
        assert result["name"] == "Lightning Bolt"
        assert result["matched_alternate_name"] is None

    async def test_all_printings(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"q": "bolt", "deduplicate": "false"})

        data = response.json()
        assert data["total_count"] == 2
        assert [r["set_code"] for r in data["results"]] == ["lea", "m21"]

    async def test_set_and_type_aliases(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"set": "ISD", "type": "insect"})

        data = response.json()
        [result] = data["results"]
        assert result["is_multi_faced"] is True
        assert result["image_uri"] == "https://img.example/front.jpg"
        assert [face["name"] for face in result["faces"]] == [
            "Delver of Secrets",
            "Insectile Aberration",
        ]
        assert data["query"] == ""

    async def test_pagination_params(self, client: AsyncClient, catalog) -> None:
        response = await client.get(
            "/api/cards",
            params={"q": "bolt", "deduplicate": "false", "page": 2, "page_size": 1},
        )

        data = response.json()
        assert data["page"] == 2
        assert data["page_size"] == 1
        assert data["total_pages"] == 2
        assert [r["set_code"] for r in data["results"]] == ["m21"]

    async def test_no_filter_rejected(self, client: AsyncClient, catalog) -> None:
        """A request without any filter is a 400 with a classified failure."""
        response = await client.get("/api/cards")

        assert response.status_code == 400
        data = response.json()
        assert data["kind"] == "missing_required"
        assert "q (name)" in data["message"]

    async def test_bad_page_size_rejected(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"q": "bolt", "page_size": 500})

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_input"

    async def test_bad_page_rejected(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"q": "bolt", "page": 0})

        assert response.status_code == 400
        assert "Page number" in response.json()["message"]

    async def test_no_matches(self, client: AsyncClient, catalog) -> None:
        response = await client.get("/api/cards", params={"q": "nothing like this"})

        assert response.status_code == 200
        data = response.json()
        assert data["results"] == []
        assert data["total_count"] == 0


class TestGetCardEndpoint:
    async def test_get_by_local_id(self, client: AsyncClient, catalog) -> None:
        local_id = catalog["lea"]

        response = await client.get(f"/api/cards/{local_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == str(local_id)
        assert data["set_code"] == "lea"
        assert data["collector_number"] == "161"
        assert data["image_uri"] == "https://img.example/lea/161/normal.jpg"
        assert data["faces"] is None

    async def test_get_multi_faced(self, client: AsyncClient, catalog) -> None:
        response = await client.get(f"/api/cards/{catalog['isd']}")

        data = response.json()
        assert data["is_multi_faced"] is True
        assert len(data["faces"]) == 2

    async def test_unknown_id_is_404(self, client: AsyncClient, catalog) -> None:
        response = await client.get(f"/api/cards/{uuid.uuid4()}")

        assert response.status_code == 404
        body = response.json()
        assert body["kind"] == "not_found"
        assert "not found" in body["message"]

    async def test_malformed_id_is_422(self, client: AsyncClient) -> None:
        response = await client.get("/api/cards/not-a-uuid")

        assert response.status_code == 422
