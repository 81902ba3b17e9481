"""
Trade-Up and Legendary Reroll Engines.

Trade-up consumes 4 same-rarity, same-type cards for one card of the next
tier. Epic inputs roll for a legendary first; a miss pays credits instead.
Reroll consumes 2 legendaries for a different legendary of the same type.

INVARIANTS:
- Every validation runs before the first write
- Inputs are removed by one conditional delete; if any input changed hands or
  got listed in the meantime the whole operation fails
- The consumed cards' own slots are never picked as the replacement
- A slot held by a living legendary is never re-awarded, even when the
  scarcity filter is relaxed
"""

import logging
import random
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.config import REROLL_CARD_COUNT, TRADE_UP_CARD_COUNT, settings
from reelcards.db.operations import credit_credits, get_character_pool, remove_owned_cards
from reelcards.filtering import (
    cascade_pick,
    excluding_claimed_legendaries,
    obtainable,
    tiers_upward,
)
from reelcards.models.card import CardTemplate, Rarity
from reelcards.models.db import CardDB
from reelcards.models.failure import FailureKind, KnownError
from reelcards.services.finish import DEFAULT_FINISH_CHANCES, roll_finish
from reelcards.services.scarcity import ScarcityConflictError, ScarcityTracker, mint_card
from reelcards.services.selection import (
    CardsChangedError,
    RarityMismatchError,
    load_selected_cards,
    require_same_type,
)

logger = logging.getLogger(__name__)

TRADE_UP_EPIC_REASON = "trade_up_epic"


# =============================================================================
# CUSTOM EXCEPTIONS
# =============================================================================


class NotEscalatableError(KnownError):
    def __init__(self, message: str = "Cannot trade up legendary cards"):
        super().__init__(kind=FailureKind.NOT_ESCALATABLE, message=message)


class NoTargetAvailableError(KnownError):
    def __init__(self, message: str):
        super().__init__(kind=FailureKind.NO_TARGET_AVAILABLE, message=message)


@dataclass(frozen=True, slots=True)
class TradeUpResult:
    """Outcome of a trade-up: either a new card or a credit payout."""

    card: CardDB | None = None
    credits: int | None = None


# =============================================================================
# HELPERS
# =============================================================================


def rolls_legendary(rng: random.Random, chance: float | None = None) -> bool:
    """Epic trade-up roll: True mints a legendary, False pays credits."""
    if chance is None:
        chance = settings.epic_to_legendary_chance
    return rng.random() < chance


def slot_ids_of(cards: list[CardDB], pool: list[CardTemplate]) -> set[str]:
    """Slot identities of owned cards; cards whose template left the pool use their template id."""
    slot_by_template = {t.template_id: t.slot_id for t in pool}
    return {slot_by_template.get(card.template_id, card.template_id) for card in cards}


async def _pick_with_relaxation(
    tracker: ScarcityTracker,
    candidates: list[CardTemplate],
    tiers: tuple[Rarity, ...],
    rng: random.Random,
) -> tuple[CardTemplate | None, bool]:
    """
    Cascade over `tiers`, excluding awarded legendary slots.

    If nothing is eligible, retry accepting slots whose holder no longer
    exists. Returns (template, relaxed).
    """
    claimed = await tracker.claimed_slot_ids()
    chosen = cascade_pick(candidates, tiers, rng, excluding_claimed_legendaries(claimed))
    if chosen is not None:
        return chosen, False

    living = await tracker.living_slot_ids()
    chosen = cascade_pick(candidates, tiers, rng, excluding_claimed_legendaries(living))
    if chosen is not None:
        logger.debug("Scarcity filter relaxed; picked %s from a released slot", chosen.template_id)
    return chosen, True


async def _consume(session: AsyncSession, user_id: str, cards: list[CardDB]) -> None:
    card_ids = [card.id for card in cards]
    removed = await remove_owned_cards(session, user_id, card_ids)
    if removed != len(card_ids):
        raise CardsChangedError(len(card_ids), removed)


# =============================================================================
# TRADE UP
# =============================================================================


async def trade_up(
    session: AsyncSession,
    user_id: str,
    card_ids: list[int],
    rng: random.Random | None = None,
) -> TradeUpResult:
    """
    Consume 4 cards of one rarity and type for a card of the next tier.

    The new card's rarity is the next tier even when the cascade had to pick
    a template of a higher natural rarity.

    Raises:
        KnownError: Invalid selection or no eligible target template
    """
    rng = rng or random.Random()
    cards = await load_selected_cards(
        session, user_id, card_ids, TRADE_UP_CARD_COUNT, action="trade up"
    )

    rarities = {Rarity.parse(card.rarity) for card in cards}
    if len(rarities) != 1:
        raise RarityMismatchError(TRADE_UP_CARD_COUNT)
    character_type = require_same_type(cards)

    target = rarities.pop().next_tier()
    if target is None:
        raise NotEscalatableError()

    if target == Rarity.LEGENDARY and not rolls_legendary(rng):
        await _consume(session, user_id, cards)
        reward = settings.trade_up_epic_credit_reward
        await credit_credits(session, user_id, reward, TRADE_UP_EPIC_REASON)
        logger.info("Epic trade-up by %s paid %d credits", user_id, reward)
        return TradeUpResult(credits=reward)

    pool = obtainable(await get_character_pool(session))
    excluded_slots = slot_ids_of(cards, pool)
    candidates = [
        t
        for t in pool
        if t.character_type == character_type and t.slot_id not in excluded_slots
    ]

    tracker = ScarcityTracker(session)
    template, relaxed = await _pick_with_relaxation(
        tracker, candidates, tiers_upward(target), rng
    )
    if template is None:
        raise NoTargetAvailableError(
            f"No {target.value}+ cards available in the character pool"
        )

    await _consume(session, user_id, cards)
    finish = roll_finish(DEFAULT_FINISH_CHANCES, rng)
    card = await mint_card(
        session, tracker, user_id, template, target, finish, allow_reclaim=relaxed
    )
    if card is None:
        raise ScarcityConflictError(template.slot_id)

    if target == Rarity.LEGENDARY:
        logger.info("Legendary trade-up: %s received %s", user_id, template.template_id)
    return TradeUpResult(card=card)


# =============================================================================
# LEGENDARY REROLL
# =============================================================================


async def legendary_reroll(
    session: AsyncSession,
    user_id: str,
    card_ids: list[int],
    rng: random.Random | None = None,
) -> CardDB:
    """
    Consume 2 legendary cards of one type for a different legendary.

    The replacement is never one of the inputs' own slots. Awarded slots are
    avoided first; only if that leaves nothing are slots with no living
    holder considered.

    Raises:
        KnownError: Invalid selection or no other legendary available
    """
    rng = rng or random.Random()
    cards = await load_selected_cards(
        session, user_id, card_ids, REROLL_CARD_COUNT, action="reroll"
    )

    if any(Rarity.parse(card.rarity) != Rarity.LEGENDARY for card in cards):
        raise NotEscalatableError("Both cards must be legendary")
    character_type = require_same_type(cards)

    pool = obtainable(await get_character_pool(session))
    excluded_slots = slot_ids_of(cards, pool)
    candidates = [
        t
        for t in pool
        if t.rarity == Rarity.LEGENDARY
        and t.character_type == character_type
        and t.slot_id not in excluded_slots
    ]

    tracker = ScarcityTracker(session)
    template, relaxed = await _pick_with_relaxation(
        tracker, candidates, (Rarity.LEGENDARY,), rng
    )
    if template is None:
        raise NoTargetAvailableError("No other legendary cards available")

    await _consume(session, user_id, cards)
    finish = roll_finish(DEFAULT_FINISH_CHANCES, rng)
    card = await mint_card(
        session, tracker, user_id, template, Rarity.LEGENDARY, finish, allow_reclaim=relaxed
    )
    if card is None:
        raise ScarcityConflictError(template.slot_id)

    logger.info("Legendary reroll: %s received %s", user_id, template.template_id)
    return card
