"""
Template selection over the character pool.

Pool filtering narrows what a pack may award; the cascade picks one
template from the first rarity tier that still has eligible entries.
"""

from reelcards.filtering.cascade import (
    TierPredicate,
    all_of,
    cascade_pick,
    excluding_claimed_legendaries,
    first_nonempty_tier,
    tiers_downward,
    tiers_upward,
)
from reelcards.filtering.pool import (
    available_rarities,
    filter_for_pack,
    obtainable,
    without_claimed_legendaries,
)

__all__ = [
    # Cascade
    "TierPredicate",
    "all_of",
    "cascade_pick",
    "excluding_claimed_legendaries",
    "first_nonempty_tier",
    "tiers_downward",
    "tiers_upward",
    # Pool
    "available_rarities",
    "filter_for_pack",
    "obtainable",
    "without_claimed_legendaries",
]
