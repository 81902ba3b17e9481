"""Tests for pack API endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reelcards.db.database import get_session
from reelcards.db.operations import credit_credits, upsert_pack, upsert_template
from reelcards.main import app
from reelcards.models.card import CardTemplate, Rarity
from reelcards.models.pack import PackConfig, RestockPolicy


@pytest.fixture
async def client(async_engine):
    """Provide an async test client with overridden database session."""
    async_session = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_session():
        async with async_session() as session:
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


async def _seed_pool(session: AsyncSession, count: int = 6) -> None:
    for i in range(count):
        await upsert_template(
            session,
            CardTemplate(
                template_id=f"t{i}",
                character_type="actor",
                rarity=Rarity.UNCOMMON,
                movie_id=1,
                image_path=f"/t{i}.jpg",
            ),
        )
    await session.commit()


class TestListPacks:
    async def test_empty_shop(self, client: AsyncClient) -> None:
        response = await client.get("/packs")

        assert response.status_code == 200
        assert response.json() == []

    async def test_pack_fields(self, client: AsyncClient, session: AsyncSession) -> None:
        await upsert_pack(
            session,
            PackConfig(
                pack_id="sale",
                name="Sale Pack",
                price=100,
                cards_per_pack=3,
                discounted=True,
                discount_percent=25,
                restock=RestockPolicy(max_purchases=2, interval_hours=12),
            ),
        )
        await upsert_pack(
            session,
            PackConfig(pack_id="soon", name="Soon", price=10, cards_per_pack=1, coming_soon=True),
        )
        await session.commit()

        response = await client.get("/packs")

        packs = {p["pack_id"]: p for p in response.json()}
        assert packs["sale"]["effective_price"] == 75
        assert packs["sale"]["max_purchases"] == 2
        assert packs["sale"]["purchasable"] is True
        assert packs["soon"]["purchasable"] is False


class TestBuyPack:
    async def test_buy_standard_pack(self, client: AsyncClient, session: AsyncSession) -> None:
        await _seed_pool(session)
        await credit_credits(session, "u1", 120, "grant")
        await session.commit()

        response = await client.post("/packs/buy", json={"user_id": "u1"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["cards"]) == 5
        assert data["balance"] == 70
        assert all(card["owner_id"] == "u1" for card in data["cards"])

        cards = await client.get("/cards/u1")
        assert cards.json()["total"] == 5

    async def test_unknown_pack(self, client: AsyncClient) -> None:
        response = await client.post("/packs/buy", json={"user_id": "u1", "pack_id": "nope"})

        assert response.status_code == 404
        data = response.json()
        assert data["outcome"] == "known_failure"
        assert data["failure"]["kind"] == "pack_not_found"
        assert data["failure"]["message"] == "Pack not found"

    async def test_insufficient_credits(self, client: AsyncClient, session: AsyncSession) -> None:
        await _seed_pool(session)

        response = await client.post("/packs/buy", json={"user_id": "u1"})

        assert response.status_code == 400
        assert response.json()["failure"]["message"] == "Not enough credits"
        cards = await client.get("/cards/u1")
        assert cards.json()["total"] == 0

    async def test_empty_pool(self, client: AsyncClient, session: AsyncSession) -> None:
        await credit_credits(session, "u1", 50, "grant")
        await session.commit()

        response = await client.post("/packs/buy", json={"user_id": "u1"})

        assert response.status_code == 400
        data = response.json()
        assert data["failure"]["kind"] == "pool_empty"
        assert data["failure"]["message"] == "Character pool is empty. Add more winning movies."

    async def test_purchase_limit(self, client: AsyncClient, session: AsyncSession) -> None:
        await _seed_pool(session)
        await upsert_pack(
            session,
            PackConfig(
                pack_id="daily",
                name="Daily Freebie",
                price=0,
                cards_per_pack=1,
                is_free=True,
                restock=RestockPolicy(max_purchases=1, interval_hours=24),
            ),
        )
        await session.commit()

        first = await client.post("/packs/buy", json={"user_id": "u1", "pack_id": "daily"})
        second = await client.post("/packs/buy", json={"user_id": "u1", "pack_id": "daily"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.json()["failure"]["message"] == (
            "Purchase limit reached (1 per 24 hours). Try again later."
        )

    async def test_missing_user_id(self, client: AsyncClient) -> None:
        response = await client.post("/packs/buy", json={"user_id": ""})

        assert response.status_code == 422
