"""
Pack Engine — Buying and Opening Packs.

A purchase is validated in a fixed order, each check a distinct failure:

1. Pack exists and is active (and is not "coming soon")
2. Per-user purchase limit for the current restock window
3. Balance covers the effective price
4. The filtered pool has something to award

Only then are credits debited, after which slots are allocated, templates
picked, finishes rolled and cards minted.

INVARIANTS:
- Credits are debited exactly once per successful purchase
- Nothing is written before every validation has passed
- A card's rarity is its slot's rolled rarity, not its template's; a
  legendary slot with no unawarded identity left is granted as epic
- A legendary slot is never awarded twice, inside one pack or across users
"""

import logging
import random
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.config import settings
from reelcards.db.operations import (
    count_pack_purchases_since,
    get_balance,
    get_character_pool,
    get_pack,
    pack_to_model,
    record_pack_purchase,
)
from reelcards.filtering import (
    available_rarities,
    cascade_pick,
    excluding_claimed_legendaries,
    filter_for_pack,
    tiers_downward,
    without_claimed_legendaries,
)
from reelcards.models.card import CardTemplate, Rarity
from reelcards.models.db import CardDB
from reelcards.models.failure import FailureKind, KnownError, NotFoundError
from reelcards.models.pack import PackConfig, RestockPolicy
from reelcards.services.finish import roll_finish
from reelcards.services.rarity import allocate_slots, hit_weights
from reelcards.services.scarcity import ScarcityTracker, mint_card

logger = logging.getLogger(__name__)

DEFAULT_PACK_ID = "default"


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class PackNotFoundError(NotFoundError):
    def __init__(self, pack_id: str):
        self.pack_id = pack_id
        super().__init__("Pack not found", kind=FailureKind.PACK_NOT_FOUND)


class PackUnavailableError(KnownError):
    def __init__(self, pack_id: str):
        self.pack_id = pack_id
        super().__init__(
            kind=FailureKind.PACK_UNAVAILABLE,
            message="This pack is not available yet",
            detail=f"Pack {pack_id} is coming soon",
        )


class PurchaseLimitError(KnownError):
    """The user already bought this pack the maximum number of times this window."""

    def __init__(self, pack_id: str, policy: RestockPolicy, purchases: int):
        self.pack_id = pack_id
        self.purchases = purchases
        super().__init__(
            kind=FailureKind.PURCHASE_LIMIT,
            message=describe_purchase_limit(policy),
            detail=f"{purchases}/{policy.max_purchases} purchases of {pack_id} this window",
            status_code=429,
        )


class InsufficientCreditsError(KnownError):
    def __init__(self, balance: int, price: int):
        self.balance = balance
        self.price = price
        super().__init__(
            kind=FailureKind.INSUFFICIENT_CREDITS,
            message="Not enough credits",
            detail=f"Balance {balance}, price {price}",
        )


class PoolEmptyError(KnownError):
    """Nothing in the character pool can be awarded by this pack."""

    def __init__(self, type_restricted: bool):
        self.type_restricted = type_restricted
        if type_restricted:
            message = "No cards of this pack's card types are available right now."
            suggestion = "Try a different pack."
        else:
            message = "Character pool is empty. Add more winning movies."
            suggestion = None
        super().__init__(kind=FailureKind.POOL_EMPTY, message=message, suggestion=suggestion)


class DebitFailedError(KnownError):
    def __init__(self, user_id: str, price: int):
        super().__init__(
            kind=FailureKind.DEBIT_FAILED,
            message="Failed to deduct credits",
            detail=f"Conditional debit of {price} for {user_id} changed no rows",
            suggestion="Please try again.",
            status_code=409,
        )


# =============================================================================
# PACK RESOLUTION AND LIMITS
# =============================================================================


def default_pack() -> PackConfig:
    """The legacy pack used when a purchase names no pack."""
    return PackConfig(
        pack_id=DEFAULT_PACK_ID,
        name="Standard Pack",
        price=settings.default_pack_price,
        cards_per_pack=settings.default_cards_per_pack,
    )


async def resolve_pack(session: AsyncSession, pack_id: str | None) -> PackConfig:
    """
    Load the pack a purchase refers to.

    Raises:
        PackNotFoundError: No active pack with this id
        PackUnavailableError: Pack is listed as coming soon
    """
    if pack_id is None:
        return default_pack()

    row = await get_pack(session, pack_id)
    if row is None or not row.is_active:
        raise PackNotFoundError(pack_id)

    pack = pack_to_model(row)
    if pack.coming_soon:
        raise PackUnavailableError(pack_id)
    return pack


def purchase_window_start(policy: RestockPolicy, now: datetime) -> datetime:
    """
    Start of the restock window containing `now`.

    Rolling windows reach back `interval_hours`; daily windows start at the
    most recent reset time (today's, or yesterday's if today's is still ahead).
    """
    rolling_hours = policy.rolling_hours
    if rolling_hours is not None:
        return now - timedelta(hours=rolling_hours)

    hour, minute = policy.reset_time()
    start = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if now < start:
        start -= timedelta(days=1)
    return start


def describe_purchase_limit(policy: RestockPolicy) -> str:
    """Human-readable explanation of a reached purchase limit."""
    rolling_hours = policy.rolling_hours
    if rolling_hours is not None:
        hours = f"{rolling_hours:g}"
        unit = "hour" if hours == "1" else "hours"
        return (
            f"Purchase limit reached ({policy.max_purchases} per {hours} {unit}). "
            "Try again later."
        )
    hour, minute = policy.reset_time()
    return (
        f"Purchase limit reached ({policy.max_purchases} per day). "
        f"Restocks at {hour:02d}:{minute:02d} UTC."
    )


async def enforce_purchase_limit(
    session: AsyncSession, user_id: str, pack: PackConfig, now: datetime
) -> None:
    """Raise PurchaseLimitError if the user has used up this window's purchases."""
    if not pack.restock.enforced:
        return
    since = purchase_window_start(pack.restock, now)
    purchases = await count_pack_purchases_since(session, user_id, pack.pack_id, since)
    if purchases >= pack.restock.max_purchases:
        raise PurchaseLimitError(pack.pack_id, pack.restock, purchases)


# =============================================================================
# SLOT PICKING
# =============================================================================


def pick_template_for_slot(
    pool: list[CardTemplate],
    target: Rarity,
    exclude_template_ids: set[str],
    claimed_slot_ids: set[str],
    rng: random.Random,
) -> CardTemplate:
    """
    Pick the template for one pack slot.

    Cascades downward from the target tier, skipping templates already in the
    pack and legendaries whose slot is awarded. If every tier is exhausted,
    falls back to any unclaimed template, and finally to anything in the pool.
    """
    candidates = [t for t in pool if t.template_id not in exclude_template_ids]
    chosen = cascade_pick(
        candidates,
        tiers_downward(target),
        rng,
        excluding_claimed_legendaries(claimed_slot_ids),
    )
    if chosen is not None:
        return chosen

    logger.debug("Slot %s exhausted every tier; picking from the whole pool", target.value)
    fallback = (
        without_claimed_legendaries(candidates, claimed_slot_ids)
        or without_claimed_legendaries(pool, claimed_slot_ids)
        or pool
    )
    return rng.choice(fallback)


# =============================================================================
# BUY PACK
# =============================================================================


async def buy_pack(
    session: AsyncSession,
    user_id: str,
    pack_id: str | None = None,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> list[CardDB]:
    """
    Buy and open one pack.

    Args:
        session: Database session; the caller commits on success
        user_id: Buyer
        pack_id: Pack to buy; None buys the default pack
        rng: Random source (a fresh one if omitted)
        now: Current time, for the purchase-limit window

    Returns:
        The minted cards, in slot order

    Raises:
        KnownError: Any validation failure (see module docstring)
    """
    rng = rng or random.Random()
    now = now or datetime.now(UTC)

    pack = await resolve_pack(session, pack_id)
    if pack_id is not None:
        await enforce_purchase_limit(session, user_id, pack, now)

    price = pack.effective_price
    balance = await get_balance(session, user_id)
    if balance < price:
        raise InsufficientCreditsError(balance, price)

    tracker = ScarcityTracker(session)
    pool = filter_for_pack(await get_character_pool(session), pack)
    available = without_claimed_legendaries(pool, await tracker.claimed_slot_ids())
    if not available:
        raise PoolEmptyError(type_restricted=pack.is_type_restricted)

    if not await record_pack_purchase(session, user_id, pack.pack_id, price):
        logger.warning(
            "Debit of %d for pack %s failed for %s after validation", price, pack.pack_id, user_id
        )
        raise DebitFailedError(user_id, price)

    weights = hit_weights(pack.rarity_weights, available_rarities(available))
    slots = allocate_slots(pack.cards_per_pack, weights, rng)
    slot_count = min(len(available), pack.cards_per_pack)

    cards: list[CardDB] = []
    picked: set[str] = set()
    for target in slots[:slot_count]:
        card = await _mint_slot(session, tracker, user_id, pack, pool, target, picked, rng)
        cards.append(card)
        picked.add(card.template_id)
        if card.rarity == Rarity.LEGENDARY.value:
            logger.info(
                "Legendary pull: %s opened %s from pack %s",
                user_id,
                card.template_id,
                pack.pack_id,
            )

    return cards


async def _mint_slot(
    session: AsyncSession,
    tracker: ScarcityTracker,
    user_id: str,
    pack: PackConfig,
    pool: list[CardTemplate],
    target: Rarity,
    picked: set[str],
    rng: random.Random,
) -> CardDB:
    """
    Pick, roll and mint one slot.

    A legendary slot can only go to a template whose slot identity is still
    unawarded. A template whose slot turns out to be taken is rejected and the
    slot re-picked; once no unawarded identity is left the slot is granted as
    epic instead.
    """
    granted = target
    rejected: set[str] = set()
    while True:
        claimed = await tracker.claimed_slot_ids()
        candidates = pool
        if granted == Rarity.LEGENDARY:
            candidates = [
                t for t in pool if t.slot_id not in claimed and t.template_id not in rejected
            ]
            if not candidates:
                logger.debug("No unawarded legendary slot left in pack %s", pack.pack_id)
                granted = Rarity.EPIC
                continue

        template = pick_template_for_slot(candidates, granted, picked | rejected, claimed, rng)
        finish = roll_finish(pack.finish, rng)
        card = await mint_card(session, tracker, user_id, template, granted, finish)
        if card is not None:
            return card
        rejected.add(template.template_id)
