"""
Database operations.

Provides the async storage contract the card engine relies on: character
pool, card store, listings, credit ledger, legendary slots, codex unlocks,
pack configuration and profiles.

Every write that guards an invariant is a single conditional statement so
concurrent requests cannot interleave between the check and the write.
"""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, exists, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.models.card import CardInstance, CardTemplate, Finish, Rarity
from reelcards.models.db import (
    CardDB,
    CharacterTemplateDB,
    CodexUnlockDB,
    CreditBalanceDB,
    CreditLedgerDB,
    LegendarySlotDB,
    ListingDB,
    PackDB,
    ProfileDB,
)
from reelcards.models.pack import (
    DEFAULT_DARK_MATTER_CHANCE,
    DEFAULT_HOLO_CHANCE,
    DEFAULT_PRISMATIC_CHANCE,
    FinishChances,
    PackConfig,
    RestockPolicy,
)

PACK_PURCHASE_REASON = "pack_purchase"

# --- Character Pool ---


def template_to_model(row: CharacterTemplateDB) -> CardTemplate:
    """Convert a database pool entry to a domain model."""
    return CardTemplate(
        template_id=row.template_id,
        character_type=row.character_type or "actor",
        rarity=Rarity.parse(row.rarity),
        movie_id=row.movie_id,
        movie_title=row.movie_title,
        actor_name=row.actor_name,
        character_name=row.character_name,
        image_path=row.image_path,
        alt_art_of_template_id=row.alt_art_of_template_id,
    )


async def get_character_pool(session: AsyncSession) -> list[CardTemplate]:
    """Get every template in the character pool, ordered by id."""
    result = await session.execute(
        select(CharacterTemplateDB).order_by(CharacterTemplateDB.template_id)
    )
    return [template_to_model(row) for row in result.scalars().all()]


async def upsert_template(session: AsyncSession, template: CardTemplate) -> CharacterTemplateDB:
    """
    Insert or update a pool entry.

    Used by the cast ingestion job; the card engine itself never writes the pool.
    """
    row = await session.get(CharacterTemplateDB, template.template_id)
    if row is None:
        row = CharacterTemplateDB(template_id=template.template_id)
        session.add(row)

    row.character_type = template.character_type
    row.rarity = template.rarity.value
    row.movie_id = template.movie_id
    row.movie_title = template.movie_title
    row.actor_name = template.actor_name
    row.character_name = template.character_name
    row.image_path = template.image_path
    row.alt_art_of_template_id = template.alt_art_of_template_id
    await session.flush()
    return row


# --- Card Store ---


def card_to_model(row: CardDB) -> CardInstance:
    """Convert a database card to a domain model."""
    return CardInstance(
        id=row.id,
        owner_id=row.owner_id,
        template_id=row.template_id,
        rarity=Rarity.parse(row.rarity),
        finish=Finish(row.finish) if row.finish in Finish._value2member_map_ else Finish.NORMAL,
        character_type=row.character_type or "actor",
        movie_id=row.movie_id,
        movie_title=row.movie_title,
        actor_name=row.actor_name,
        character_name=row.character_name,
        image_path=row.image_path,
        acquired_at=row.acquired_at,
    )


async def list_cards_by_owner(session: AsyncSession, owner_id: str) -> list[CardDB]:
    """Get all cards owned by a user, oldest first."""
    result = await session.execute(
        select(CardDB).where(CardDB.owner_id == owner_id).order_by(CardDB.id)
    )
    return list(result.scalars().all())


async def get_card(session: AsyncSession, card_id: int) -> CardDB | None:
    """Get a card by id. Returns None if it does not exist."""
    return await session.get(CardDB, card_id)


async def get_cards_by_ids(session: AsyncSession, card_ids: Iterable[int]) -> list[CardDB]:
    """Get the cards that exist among `card_ids`, in no particular order."""
    ids = list(card_ids)
    if not ids:
        return []
    result = await session.execute(select(CardDB).where(CardDB.id.in_(ids)))
    return list(result.scalars().all())


async def insert_card(
    session: AsyncSession,
    owner_id: str,
    template: CardTemplate,
    rarity: Rarity,
    finish: Finish,
) -> CardDB:
    """
    Mint a card for a user from a template.

    `rarity` is the granted rarity, which may differ from the template's.
    """
    card = CardDB(
        owner_id=owner_id,
        template_id=template.template_id,
        rarity=rarity.value,
        finish=finish.value,
        character_type=template.character_type,
        movie_id=template.movie_id,
        movie_title=template.movie_title,
        actor_name=template.actor_name,
        character_name=template.character_name,
        image_path=template.image_path,
    )
    session.add(card)
    await session.flush()
    return card


async def delete_card(session: AsyncSession, card: CardDB) -> None:
    """Delete a single card row that this request minted."""
    await session.delete(card)
    await session.flush()


async def remove_owned_cards(session: AsyncSession, owner_id: str, card_ids: list[int]) -> int:
    """
    Remove cards that are still owned by `owner_id` and not listed.

    Ownership and listing status are re-checked by the DELETE itself.
    Returns the number of removed rows; callers compare it to len(card_ids).
    """
    if not card_ids:
        return 0
    listed = select(ListingDB.card_id).where(ListingDB.card_id.in_(card_ids))
    result = await session.execute(
        delete(CardDB)
        .where(
            CardDB.id.in_(card_ids),
            CardDB.owner_id == owner_id,
            CardDB.id.not_in(listed),
        )
        .execution_options(synchronize_session=False)
    )

    # Drop loaded copies so later lookups in this session see the removal
    removed = set(card_ids)
    for identity_key, obj in list(session.identity_map.items()):
        if isinstance(obj, CardDB) and identity_key[1][0] in removed:
            session.expunge(obj)

    # rowcount is available on DELETE results; type stubs incomplete for async
    return int(result.rowcount)  # type: ignore[attr-defined]


# --- Listings ---


async def get_listed_card_ids(
    session: AsyncSession, card_ids: Iterable[int] | None = None
) -> set[int]:
    """Card ids currently on the marketplace, optionally restricted to `card_ids`."""
    stmt = select(ListingDB.card_id)
    if card_ids is not None:
        stmt = stmt.where(ListingDB.card_id.in_(list(card_ids)))
    result = await session.execute(stmt)
    return set(result.scalars().all())


async def create_listing(
    session: AsyncSession, card_id: int, seller_id: str, price: int
) -> ListingDB:
    """List a card on the marketplace."""
    listing = ListingDB(card_id=card_id, seller_id=seller_id, price=price)
    session.add(listing)
    await session.flush()
    return listing


# --- Credit Ledger ---


async def get_balance(session: AsyncSession, user_id: str) -> int:
    """Current credit balance; users with no balance row have 0."""
    result = await session.execute(
        select(CreditBalanceDB.balance).where(CreditBalanceDB.user_id == user_id)
    )
    return result.scalar_one_or_none() or 0


async def add_ledger_entry(
    session: AsyncSession,
    user_id: str,
    amount: int,
    reason: str,
    pack_id: str | None = None,
    created_at: datetime | None = None,
) -> CreditLedgerDB:
    """Record a credit movement without touching the balance."""
    entry = CreditLedgerDB(user_id=user_id, amount=amount, reason=reason, pack_id=pack_id)
    if created_at is not None:
        entry.created_at = created_at
    session.add(entry)
    await session.flush()
    return entry


async def credit_credits(session: AsyncSession, user_id: str, amount: int, reason: str) -> int:
    """
    Add credits to a user's balance and record the movement.

    Returns the new balance.
    """
    result = await session.execute(
        update(CreditBalanceDB)
        .where(CreditBalanceDB.user_id == user_id)
        .values(balance=CreditBalanceDB.balance + amount)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) == 0:  # type: ignore[attr-defined]
        session.add(CreditBalanceDB(user_id=user_id, balance=amount))
    await add_ledger_entry(session, user_id, amount, reason)
    return await get_balance(session, user_id)


async def debit_credits(
    session: AsyncSession,
    user_id: str,
    amount: int,
    reason: str,
    pack_id: str | None = None,
) -> bool:
    """
    Atomically debit credits if the balance covers them.

    The balance check and the decrement are one UPDATE, so concurrent debits
    cannot both succeed against the same credits. Returns True on success.
    """
    result = await session.execute(
        update(CreditBalanceDB)
        .where(CreditBalanceDB.user_id == user_id, CreditBalanceDB.balance >= amount)
        .values(balance=CreditBalanceDB.balance - amount)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount) != 1:  # type: ignore[attr-defined]
        return False
    await add_ledger_entry(session, user_id, -amount, reason, pack_id=pack_id)
    return True


async def record_pack_purchase(
    session: AsyncSession, user_id: str, pack_id: str, amount: int
) -> bool:
    """Debit a pack's price; free packs only get a ledger entry."""
    if amount > 0:
        return await debit_credits(session, user_id, amount, PACK_PURCHASE_REASON, pack_id=pack_id)
    await add_ledger_entry(session, user_id, 0, PACK_PURCHASE_REASON, pack_id=pack_id)
    return True


async def count_pack_purchases_since(
    session: AsyncSession, user_id: str, pack_id: str, since: datetime
) -> int:
    """Number of purchases of a pack by a user at or after `since`."""
    result = await session.execute(
        select(CreditLedgerDB.id).where(
            CreditLedgerDB.user_id == user_id,
            CreditLedgerDB.reason == PACK_PURCHASE_REASON,
            CreditLedgerDB.pack_id == pack_id,
            CreditLedgerDB.created_at >= since,
        )
    )
    return len(result.scalars().all())


# --- Legendary Slots ---


async def get_claimed_slot_ids(session: AsyncSession) -> set[str]:
    """Every legendary slot identity ever awarded."""
    result = await session.execute(select(LegendarySlotDB.slot_id))
    return set(result.scalars().all())


async def get_living_slot_ids(session: AsyncSession) -> set[str]:
    """Awarded slots whose holder still exists as a legendary card."""
    result = await session.execute(
        select(LegendarySlotDB.slot_id)
        .join(CardDB, CardDB.id == LegendarySlotDB.holder_card_id)
        .where(CardDB.rarity == Rarity.LEGENDARY.value)
    )
    return set(result.scalars().all())


async def claim_legendary_slot(session: AsyncSession, slot_id: str, card_id: int) -> bool:
    """
    Record `card_id` as the holder of a never-awarded slot.

    Insert-if-absent in one statement. Returns False if the slot was already
    awarded. A concurrent insert of the same slot surfaces as IntegrityError
    from the primary key.
    """
    already_claimed = (
        select(LegendarySlotDB.slot_id)
        .where(LegendarySlotDB.slot_id == slot_id)
        .correlate(None)
        .exists()
    )
    result = await session.execute(
        insert(LegendarySlotDB.__table__).from_select(
            ["slot_id", "holder_card_id"],
            select(literal(slot_id), literal(card_id)).where(~already_claimed),
        )
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


async def get_slot_holder(session: AsyncSession, slot_id: str) -> int | None:
    """Card id currently recorded as the holder of an awarded slot."""
    result = await session.execute(
        select(LegendarySlotDB.holder_card_id).where(LegendarySlotDB.slot_id == slot_id)
    )
    return result.scalar_one_or_none()


async def reclaim_legendary_slot(
    session: AsyncSession, slot_id: str, card_id: int, expected_holder_id: int
) -> bool:
    """
    Hand an awarded slot to a new holder if its current holder is gone.

    Compare-and-swap on the holder: succeeds only while the slot still records
    `expected_holder_id` and no legendary card with that id exists. A reclaim
    that lost a race sees a different holder and changes nothing.
    """
    holder_alive = exists().where(
        CardDB.id == LegendarySlotDB.holder_card_id,
        CardDB.rarity == Rarity.LEGENDARY.value,
    )
    result = await session.execute(
        update(LegendarySlotDB)
        .where(
            LegendarySlotDB.slot_id == slot_id,
            LegendarySlotDB.holder_card_id == expected_holder_id,
            ~holder_alive,
        )
        .values(holder_card_id=card_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount) == 1  # type: ignore[attr-defined]


# --- Codex ---


async def get_codex_unlocks(session: AsyncSession, user_id: str) -> dict[Finish, set[str]]:
    """Template ids a user has unlocked in the codex, per finish tier."""
    result = await session.execute(
        select(CodexUnlockDB.template_id, CodexUnlockDB.finish).where(
            CodexUnlockDB.user_id == user_id
        )
    )
    unlocks: dict[Finish, set[str]] = {finish: set() for finish in Finish}
    for template_id, finish in result.all():
        if finish in Finish._value2member_map_:
            unlocks[Finish(finish)].add(template_id)
    return unlocks


async def add_codex_unlock(
    session: AsyncSession, user_id: str, template_id: str, finish: Finish
) -> CodexUnlockDB:
    """Record a codex unlock. Raises IntegrityError if it already exists."""
    unlock = CodexUnlockDB(user_id=user_id, template_id=template_id, finish=finish.value)
    session.add(unlock)
    await session.flush()
    return unlock


# --- Pack Configuration ---


def pack_to_model(row: PackDB) -> PackConfig:
    """Convert a database pack to a domain model."""
    weights = None
    if row.rarity_weights:
        weights = {
            Rarity.parse(name): float(value)
            for name, value in row.rarity_weights.items()
            if name in Rarity._value2member_map_
        }
    finish = FinishChances(
        holo=row.holo_chance if row.holo_chance is not None else DEFAULT_HOLO_CHANCE,
        prismatic=(
            row.prismatic_chance if row.prismatic_chance is not None else DEFAULT_PRISMATIC_CHANCE
        ),
        dark_matter=(
            row.dark_matter_chance
            if row.dark_matter_chance is not None
            else DEFAULT_DARK_MATTER_CHANCE
        ),
        allow_prismatic=bool(row.allow_prismatic),
        allow_dark_matter=bool(row.allow_dark_matter),
    )
    restock = RestockPolicy(
        max_purchases=row.max_purchases_per_window or 0,
        interval_hours=row.restock_interval_hours,
        hour_utc=row.restock_hour_utc or 0,
        minute_utc=row.restock_minute_utc or 0,
    )
    return PackConfig(
        pack_id=row.id,
        name=row.name,
        price=row.price,
        cards_per_pack=row.cards_per_pack,
        rarity_weights=weights,
        allowed_rarities=tuple(Rarity.parse(r) for r in row.allowed_rarities or []),
        allowed_card_types=tuple(row.allowed_card_types or []),
        finish=finish,
        restock=restock,
        is_active=bool(row.is_active),
        is_free=bool(row.is_free),
        coming_soon=bool(row.coming_soon),
        discounted=bool(row.discounted),
        discount_percent=row.discount_percent or 0,
        sort_order=row.sort_order or 0,
    )


async def get_pack(session: AsyncSession, pack_id: str) -> PackDB | None:
    """Get a pack configuration by id."""
    return await session.get(PackDB, pack_id)


async def list_packs(session: AsyncSession, active_only: bool = True) -> list[PackDB]:
    """Get pack configurations in display order."""
    stmt = select(PackDB).order_by(PackDB.sort_order, PackDB.id)
    if active_only:
        stmt = stmt.where(PackDB.is_active.is_(True))
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def upsert_pack(session: AsyncSession, pack: PackConfig) -> PackDB:
    """
    Insert or update a pack configuration.

    Used by the admin screens; the card engine itself only reads packs.
    """
    row = await session.get(PackDB, pack.pack_id)
    if row is None:
        row = PackDB(id=pack.pack_id)
        session.add(row)

    row.name = pack.name
    row.price = pack.price
    row.cards_per_pack = pack.cards_per_pack
    row.is_active = pack.is_active
    row.is_free = pack.is_free
    row.coming_soon = pack.coming_soon
    row.discounted = pack.discounted
    row.discount_percent = pack.discount_percent
    row.sort_order = pack.sort_order
    row.allowed_rarities = [r.value for r in pack.allowed_rarities]
    row.allowed_card_types = list(pack.allowed_card_types)
    row.rarity_weights = (
        {r.value: w for r, w in pack.rarity_weights.items()} if pack.rarity_weights else None
    )
    row.holo_chance = pack.finish.holo
    row.prismatic_chance = pack.finish.prismatic
    row.dark_matter_chance = pack.finish.dark_matter
    row.allow_prismatic = pack.finish.allow_prismatic
    row.allow_dark_matter = pack.finish.allow_dark_matter
    row.max_purchases_per_window = pack.restock.max_purchases
    row.restock_interval_hours = pack.restock.interval_hours
    row.restock_hour_utc = pack.restock.hour_utc
    row.restock_minute_utc = pack.restock.minute_utc
    await session.flush()
    return row


# --- Profiles ---


async def get_displayed_badge_movie_id(session: AsyncSession, user_id: str) -> int | None:
    """The movie a user chose to showcase, if any."""
    profile = await session.get(ProfileDB, user_id)
    return profile.displayed_badge_movie_id if profile else None


async def set_displayed_badge_movie_id(
    session: AsyncSession, user_id: str, movie_id: int | None
) -> ProfileDB:
    """Store (or clear) the movie a user chose to showcase."""
    profile = await session.get(ProfileDB, user_id)
    if profile is None:
        profile = ProfileDB(user_id=user_id)
        session.add(profile)
    profile.displayed_badge_movie_id = movie_id
    await session.flush()
    return profile
