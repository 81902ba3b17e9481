"""
Character Pool Filtering.

Narrows the character pool to what a pack (or a trade-up) may award.
"""

import logging
from collections.abc import Iterable

from reelcards.models.card import CardTemplate, Rarity
from reelcards.models.pack import PackConfig

logger = logging.getLogger(__name__)


def obtainable(pool: Iterable[CardTemplate]) -> list[CardTemplate]:
    """Templates that can drop at all; entries without artwork never do."""
    return [t for t in pool if t.has_artwork]


def filter_for_pack(pool: Iterable[CardTemplate], pack: PackConfig) -> list[CardTemplate]:
    """
    Apply a pack's allowed-rarity and allowed-type filters.

    The "Character Pack" never includes the non-actor character type,
    whatever its stored configuration says.
    """
    result = [
        t
        for t in obtainable(pool)
        if pack.admits_rarity(t.rarity) and pack.admits_type(t.character_type)
    ]
    logger.debug("Pack %s pool: %d templates after filters", pack.pack_id, len(result))
    return result


def without_claimed_legendaries(
    pool: Iterable[CardTemplate], claimed_slot_ids: set[str]
) -> list[CardTemplate]:
    """Drop legendary templates whose slot has already been awarded."""
    return [
        t
        for t in pool
        if t.rarity != Rarity.LEGENDARY or t.slot_id not in claimed_slot_ids
    ]


def available_rarities(pool: Iterable[CardTemplate]) -> set[Rarity]:
    """Rarity tiers that have at least one template."""
    return {t.rarity for t in pool}
