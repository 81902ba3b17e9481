"""
Completion and Badge Tracker.

A movie's set is every obtainable template for that movie, collapsed to slot
identities. Completion is derived on demand and never stored:

- Normal: every slot of the movie is represented among the user's owned cards
- Holo / Prismatic / Dark Matter: every main slot (non-alt-art, actor type) is
  unlocked in the codex at that finish, through the main template or any of
  its alt-art siblings

A badge shows the highest tier reached, and only while normal completion holds.

INVARIANT: Removing cards can only shrink the discovered slots, so completion
is monotone under removal.
"""

from collections.abc import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import (
    get_character_pool,
    get_codex_unlocks,
    get_displayed_badge_movie_id,
    list_cards_by_owner,
    set_displayed_badge_movie_id,
)
from reelcards.filtering import obtainable
from reelcards.models.badge import Badge, BadgeProgress
from reelcards.models.card import ACTOR_TYPE, FINISH_ORDER, CardTemplate, Finish
from reelcards.models.db import CardDB
from reelcards.models.failure import NotFoundError

# Tiers tracked through the codex rather than owned cards
CODEX_TIERS: tuple[Finish, ...] = FINISH_ORDER[1:]


# =============================================================================
# PURE COMPLETION RULES
# =============================================================================


def movie_sets(pool: Iterable[CardTemplate]) -> dict[int, list[CardTemplate]]:
    """Obtainable templates grouped by movie."""
    sets: dict[int, list[CardTemplate]] = {}
    for template in obtainable(pool):
        sets.setdefault(template.movie_id, []).append(template)
    return sets


def owned_slot_ids(cards: Iterable[CardDB], pool: Iterable[CardTemplate]) -> set[str]:
    """Slot identities represented among owned cards."""
    slot_by_template = {t.template_id: t.slot_id for t in pool}
    return {slot_by_template.get(card.template_id, card.template_id) for card in cards}


def is_normal_complete(templates: list[CardTemplate], owned_slots: set[str]) -> bool:
    required = {t.slot_id for t in templates}
    return bool(required) and required <= owned_slots


def is_tier_complete(templates: list[CardTemplate], unlocked_template_ids: set[str]) -> bool:
    """True if every main slot is unlocked through its main template or an alt-art."""
    mains = [t for t in templates if not t.is_alt_art and t.character_type == ACTOR_TYPE]
    if not mains:
        return False
    unlocked_slots = {t.slot_id for t in templates if t.template_id in unlocked_template_ids}
    return all(main.template_id in unlocked_slots for main in mains)


def completed_tiers(
    templates: list[CardTemplate],
    owned_slots: set[str],
    unlocks: Mapping[Finish, set[str]],
) -> list[Finish]:
    """Every tier complete for one movie, lowest first."""
    tiers = []
    if is_normal_complete(templates, owned_slots):
        tiers.append(Finish.NORMAL)
    for tier in CODEX_TIERS:
        if is_tier_complete(templates, unlocks.get(tier, set())):
            tiers.append(tier)
    return tiers


def badge_tier(
    templates: list[CardTemplate],
    owned_slots: set[str],
    unlocks: Mapping[Finish, set[str]],
) -> Finish | None:
    """Highest tier reached, or None when the set is not complete at normal."""
    tiers = completed_tiers(templates, owned_slots, unlocks)
    if Finish.NORMAL not in tiers:
        return None
    return max(tiers, key=Finish.rank)


def _movie_title(templates: list[CardTemplate]) -> str:
    return next((t.movie_title for t in templates if t.movie_title), "")


# =============================================================================
# QUERIES
# =============================================================================


async def get_badge_progress(session: AsyncSession, user_id: str) -> BadgeProgress:
    """Completed movie ids per finish tier."""
    pool = await get_character_pool(session)
    owned = owned_slot_ids(await list_cards_by_owner(session, user_id), pool)
    unlocks = await get_codex_unlocks(session, user_id)

    progress = BadgeProgress(completed={tier: [] for tier in FINISH_ORDER})
    for movie_id, templates in sorted(movie_sets(pool).items()):
        for tier in completed_tiers(templates, owned, unlocks):
            progress.completed[tier].append(movie_id)
    return progress


async def get_user_badges(session: AsyncSession, user_id: str) -> list[Badge]:
    """Every badge the user has earned, one per completed movie."""
    pool = await get_character_pool(session)
    owned = owned_slot_ids(await list_cards_by_owner(session, user_id), pool)
    unlocks = await get_codex_unlocks(session, user_id)

    badges = []
    for movie_id, templates in sorted(movie_sets(pool).items()):
        tier = badge_tier(templates, owned, unlocks)
        if tier is not None:
            badges.append(Badge(movie_id=movie_id, movie_title=_movie_title(templates), tier=tier))
    return badges


async def get_displayed_badge_for_user(session: AsyncSession, user_id: str) -> Badge | None:
    """
    The badge shown on a user's profile.

    Resolves the showcased movie to its highest completed tier. Returns None
    if no movie is chosen or the movie is not complete at the normal tier.
    """
    movie_id = await get_displayed_badge_movie_id(session, user_id)
    if movie_id is None:
        return None

    pool = await get_character_pool(session)
    templates = movie_sets(pool).get(movie_id)
    if not templates:
        return None

    owned = owned_slot_ids(await list_cards_by_owner(session, user_id), pool)
    unlocks = await get_codex_unlocks(session, user_id)
    tier = badge_tier(templates, owned, unlocks)
    if tier is None:
        return None
    return Badge(movie_id=movie_id, movie_title=_movie_title(templates), tier=tier)


async def set_displayed_badge(
    session: AsyncSession, user_id: str, movie_id: int | None
) -> None:
    """
    Store the movie a user wants to showcase; None clears it.

    Raises:
        NotFoundError: The movie has no obtainable cards
    """
    if movie_id is not None:
        pool = await get_character_pool(session)
        if movie_id not in movie_sets(pool):
            raise NotFoundError("Movie not found")
    await set_displayed_badge_movie_id(session, user_id, movie_id)


async def get_badges_lost_if_cards_removed(
    session: AsyncSession, user_id: str, card_ids: Iterable[int]
) -> list[Badge]:
    """
    Badges the user would lose if the given cards were removed.

    Only movies touched by a removed card can be affected. Losing normal
    completion hides the badge entirely, so the normal tier and every higher
    tier currently complete are reported together.
    """
    pool = await get_character_pool(session)
    cards = await list_cards_by_owner(session, user_id)
    removing = set(card_ids)
    removed = [card for card in cards if card.id in removing]
    if not removed:
        return []

    sets = movie_sets(pool)
    owned_before = owned_slot_ids(cards, pool)
    owned_after = owned_slot_ids([card for card in cards if card.id not in removing], pool)
    unlocks = await get_codex_unlocks(session, user_id)

    lost = []
    for movie_id in sorted({card.movie_id for card in removed}):
        templates = sets.get(movie_id)
        if not templates:
            continue
        if not is_normal_complete(templates, owned_before):
            continue
        if is_normal_complete(templates, owned_after):
            continue
        title = _movie_title(templates)
        for tier in completed_tiers(templates, owned_before, unlocks):
            lost.append(Badge(movie_id=movie_id, movie_title=title, tier=tier))
    return lost
