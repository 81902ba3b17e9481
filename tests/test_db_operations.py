"""Tests for the storage contract's atomic primitives."""

from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import (
    PACK_PURCHASE_REASON,
    add_codex_unlock,
    add_ledger_entry,
    claim_legendary_slot,
    count_pack_purchases_since,
    create_listing,
    credit_credits,
    debit_credits,
    get_balance,
    get_card,
    get_character_pool,
    get_claimed_slot_ids,
    get_codex_unlocks,
    get_living_slot_ids,
    get_pack,
    get_slot_holder,
    insert_card,
    list_cards_by_owner,
    pack_to_model,
    reclaim_legendary_slot,
    record_pack_purchase,
    remove_owned_cards,
    upsert_pack,
    upsert_template,
)
from reelcards.models.card import CardTemplate, Finish, Rarity
from reelcards.models.db import CharacterTemplateDB, CreditLedgerDB
from reelcards.models.pack import FinishChances, PackConfig, RestockPolicy

LEGEND = CardTemplate(
    template_id="m1-hero",
    character_type="actor",
    rarity=Rarity.LEGENDARY,
    movie_id=1,
    movie_title="Heat",
    actor_name="Al Pacino",
    character_name="Vincent Hanna",
    image_path="/hero.jpg",
)
GRUNT = CardTemplate(
    template_id="m1-grunt",
    character_type="actor",
    rarity=Rarity.UNCOMMON,
    movie_id=1,
    image_path="/grunt.jpg",
)


class TestCharacterPool:
    async def test_upsert_and_read(self, session: AsyncSession) -> None:
        await upsert_template(session, LEGEND)
        await upsert_template(session, GRUNT)
        await session.commit()

        pool = await get_character_pool(session)

        assert [t.template_id for t in pool] == ["m1-grunt", "m1-hero"]
        assert pool[1].rarity == Rarity.LEGENDARY
        assert pool[1].movie_title == "Heat"

    async def test_legacy_common_reads_as_uncommon(self, session: AsyncSession) -> None:
        session.add(
            CharacterTemplateDB(
                template_id="old", character_type="actor", rarity="common", movie_id=2
            )
        )
        await session.commit()

        pool = await get_character_pool(session)

        assert pool[0].rarity == Rarity.UNCOMMON


class TestCreditLedger:
    async def test_balance_defaults_to_zero(self, session: AsyncSession) -> None:
        assert await get_balance(session, "nobody") == 0

    async def test_credit_creates_balance(self, session: AsyncSession) -> None:
        assert await credit_credits(session, "u1", 120, "grant") == 120
        assert await credit_credits(session, "u1", 30, "grant") == 150

    async def test_debit_within_balance(self, session: AsyncSession) -> None:
        await credit_credits(session, "u1", 100, "grant")

        assert await debit_credits(session, "u1", 60, "spend") is True
        assert await get_balance(session, "u1") == 40

    async def test_debit_beyond_balance_changes_nothing(self, session: AsyncSession) -> None:
        await credit_credits(session, "u1", 50, "grant")

        assert await debit_credits(session, "u1", 51, "spend") is False
        assert await get_balance(session, "u1") == 50
        result = await session.execute(
            select(CreditLedgerDB).where(CreditLedgerDB.reason == "spend")
        )
        assert result.scalars().all() == []

    async def test_second_debit_cannot_overdraw(self, session: AsyncSession) -> None:
        """Two debits against the same credits: only one succeeds."""
        await credit_credits(session, "u1", 50, "grant")

        first = await debit_credits(session, "u1", 50, "spend")
        second = await debit_credits(session, "u1", 50, "spend")

        assert (first, second) == (True, False)
        assert await get_balance(session, "u1") == 0

    async def test_free_pack_purchase_is_recorded(self, session: AsyncSession) -> None:
        assert await record_pack_purchase(session, "u1", "free", 0) is True

        since = datetime.now(UTC) - timedelta(minutes=1)
        assert await count_pack_purchases_since(session, "u1", "free", since) == 1
        assert await get_balance(session, "u1") == 0

    async def test_purchase_count_respects_window(self, session: AsyncSession) -> None:
        now = datetime.now(UTC)
        await add_ledger_entry(
            session,
            "u1",
            -50,
            PACK_PURCHASE_REASON,
            pack_id="p",
            created_at=now - timedelta(days=2),
        )
        await add_ledger_entry(session, "u1", -50, PACK_PURCHASE_REASON, pack_id="p")
        await add_ledger_entry(session, "u1", -50, PACK_PURCHASE_REASON, pack_id="other")

        since = now - timedelta(hours=1)
        assert await count_pack_purchases_since(session, "u1", "p", since) == 1


class TestCardStore:
    async def test_insert_uses_granted_rarity(self, session: AsyncSession) -> None:
        card = await insert_card(session, "u1", GRUNT, Rarity.EPIC, Finish.HOLO)

        assert card.rarity == "epic"
        assert card.finish == "holo"
        assert card.template_id == "m1-grunt"

    async def test_remove_owned_cards(self, session: AsyncSession) -> None:
        a = await insert_card(session, "u1", GRUNT, Rarity.UNCOMMON, Finish.NORMAL)
        b = await insert_card(session, "u1", GRUNT, Rarity.UNCOMMON, Finish.NORMAL)

        removed = await remove_owned_cards(session, "u1", [a.id, b.id])

        assert removed == 2
        assert await list_cards_by_owner(session, "u1") == []
        assert await get_card(session, a.id) is None

    async def test_remove_skips_listed_and_foreign_cards(self, session: AsyncSession) -> None:
        mine = await insert_card(session, "u1", GRUNT, Rarity.UNCOMMON, Finish.NORMAL)
        listed = await insert_card(session, "u1", GRUNT, Rarity.UNCOMMON, Finish.NORMAL)
        theirs = await insert_card(session, "u2", GRUNT, Rarity.UNCOMMON, Finish.NORMAL)
        await create_listing(session, listed.id, "u1", 10)

        removed = await remove_owned_cards(session, "u1", [mine.id, listed.id, theirs.id])

        assert removed == 1
        remaining = {c.id for c in await list_cards_by_owner(session, "u1")}
        assert remaining == {listed.id}
        assert len(await list_cards_by_owner(session, "u2")) == 1


class TestLegendarySlots:
    async def test_claim_once(self, session: AsyncSession) -> None:
        card = await insert_card(session, "u1", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)

        assert await claim_legendary_slot(session, "m1-hero", card.id) is True
        assert await claim_legendary_slot(session, "m1-hero", card.id + 1) is False
        assert await get_claimed_slot_ids(session) == {"m1-hero"}

    async def test_living_slots_follow_holder(self, session: AsyncSession) -> None:
        card = await insert_card(session, "u1", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)
        await claim_legendary_slot(session, "m1-hero", card.id)

        assert await get_living_slot_ids(session) == {"m1-hero"}

        await remove_owned_cards(session, "u1", [card.id])

        assert await get_living_slot_ids(session) == set()
        assert await get_claimed_slot_ids(session) == {"m1-hero"}

    async def test_reclaim_requires_dead_holder(self, session: AsyncSession) -> None:
        holder = await insert_card(session, "u1", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)
        await claim_legendary_slot(session, "m1-hero", holder.id)
        holder_id = holder.id
        newcomer = await insert_card(session, "u2", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)

        assert await reclaim_legendary_slot(session, "m1-hero", newcomer.id, holder_id) is False

        await remove_owned_cards(session, "u1", [holder_id])

        assert await reclaim_legendary_slot(session, "m1-hero", newcomer.id, holder_id) is True
        assert await get_slot_holder(session, "m1-hero") == newcomer.id
        # The new holder is alive, so nobody else can take the slot
        assert (
            await reclaim_legendary_slot(session, "m1-hero", newcomer.id + 1, newcomer.id)
            is False
        )

    async def test_reclaim_with_stale_holder_fails(self, session: AsyncSession) -> None:
        """A reclaim that read the holder before another reclaim swapped it changes nothing."""
        gone = await insert_card(session, "u1", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)
        await claim_legendary_slot(session, "m1-hero", gone.id)
        gone_id = gone.id
        await remove_owned_cards(session, "u1", [gone_id])
        first = await insert_card(session, "u2", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)
        second = await insert_card(session, "u3", LEGEND, Rarity.LEGENDARY, Finish.NORMAL)
        first_id = first.id

        assert await reclaim_legendary_slot(session, "m1-hero", first_id, gone_id) is True
        # The first winner disappears too, but the slot no longer records `gone_id`
        await remove_owned_cards(session, "u2", [first_id])

        assert await reclaim_legendary_slot(session, "m1-hero", second.id, gone_id) is False
        assert await get_slot_holder(session, "m1-hero") == first_id

    async def test_unawarded_slot_has_no_holder(self, session: AsyncSession) -> None:
        assert await get_slot_holder(session, "m1-hero") is None


class TestCodexAndPacks:
    async def test_codex_unlocks_by_finish(self, session: AsyncSession) -> None:
        await add_codex_unlock(session, "u1", "m1-hero", Finish.HOLO)
        await add_codex_unlock(session, "u1", "m1-grunt", Finish.NORMAL)

        unlocks = await get_codex_unlocks(session, "u1")

        assert unlocks[Finish.HOLO] == {"m1-hero"}
        assert unlocks[Finish.NORMAL] == {"m1-grunt"}
        assert unlocks[Finish.DARK_MATTER] == set()

    async def test_pack_round_trip(self, session: AsyncSession) -> None:
        pack = PackConfig(
            pack_id="holo-pack",
            name="Holo Pack",
            price=120,
            cards_per_pack=3,
            rarity_weights={Rarity.EPIC: 5, Rarity.RARE: 5},
            allowed_card_types=("actor",),
            finish=FinishChances(holo=0.5, allow_prismatic=True),
            restock=RestockPolicy(max_purchases=2, hour_utc=18),
        )
        await upsert_pack(session, pack)
        await session.commit()

        loaded = pack_to_model(await get_pack(session, "holo-pack"))

        assert loaded.price == 120
        assert loaded.rarity_weights == {Rarity.EPIC: 5.0, Rarity.RARE: 5.0}
        assert loaded.allowed_card_types == ("actor",)
        assert loaded.finish.holo == 0.5
        assert loaded.finish.allow_prismatic is True
        assert loaded.finish.allow_dark_matter is False
        assert loaded.restock.max_purchases == 2
        assert loaded.restock.reset_time() == (18, 0)
