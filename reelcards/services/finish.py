"""
Finish Roller.

Rolls the cosmetic finish of a freshly minted card. Higher tiers are rolled
first and a hit stops the sequence, so exactly one finish results:

    dark matter (if permitted) -> prismatic (if permitted) -> holo -> normal
"""

import random

from reelcards.models.card import Finish
from reelcards.models.pack import FinishChances

# Context for cards not minted from a pack (trade-ups, rerolls)
DEFAULT_FINISH_CHANCES = FinishChances()


def roll_finish(chances: FinishChances, rng: random.Random) -> Finish:
    """Roll one finish for one card."""
    if chances.allow_dark_matter and rng.random() < chances.dark_matter:
        return Finish.DARK_MATTER
    if chances.allow_prismatic and rng.random() < chances.prismatic:
        return Finish.PRISMATIC
    if rng.random() < chances.holo:
        return Finish.HOLO
    return Finish.NORMAL
