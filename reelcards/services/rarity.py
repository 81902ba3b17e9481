"""
Rarity Slot Allocation.

Each pack gets one "hit" slot rolled from a weighted distribution over
legendary/epic/rare/uncommon, plus bulk slots that are rare 20% of the
time and uncommon otherwise. Slots are shuffled so the hit is not always
first.

Weights go through two explicit stages:
1. Configured weights (pack override or defaults), normalized to sum to 1
2. Tiers with nothing available are zeroed, so the hit never targets an
   empty tier; if every tier is zeroed, the configured weights are used and
   the per-slot cascade handles the shortfall
"""

import random
from collections.abc import Mapping

from reelcards.models.card import CASCADE_ORDER, Rarity

# Default hit-tier weights (percent)
DEFAULT_RARITY_WEIGHTS: dict[Rarity, float] = {
    Rarity.LEGENDARY: 1,
    Rarity.EPIC: 10,
    Rarity.RARE: 25,
    Rarity.UNCOMMON: 64,
}

# Chance a bulk (non-hit) slot is rare instead of uncommon
BULK_RARE_CHANCE = 0.2


def normalize_weights(weights: Mapping[Rarity, float]) -> dict[Rarity, float]:
    """
    Scale weights to sum to 1.

    Missing and negative weights count as 0. All-zero weights stay all zero.
    """
    cleaned = {tier: max(float(weights.get(tier, 0)), 0.0) for tier in CASCADE_ORDER}
    total = sum(cleaned.values())
    if total <= 0:
        return {tier: 0.0 for tier in CASCADE_ORDER}
    return {tier: value / total for tier, value in cleaned.items()}


def configured_weights(override: Mapping[Rarity, float] | None) -> dict[Rarity, float]:
    """Stage 1: the pack's override if it has any positive weight, else the defaults."""
    if override and any(value > 0 for value in override.values()):
        return normalize_weights(override)
    return normalize_weights(DEFAULT_RARITY_WEIGHTS)


def zero_unavailable(
    weights: Mapping[Rarity, float], available: set[Rarity]
) -> dict[Rarity, float]:
    """Stage 2: zero out tiers with no available templates, then renormalize."""
    return normalize_weights(
        {tier: (weights.get(tier, 0.0) if tier in available else 0.0) for tier in CASCADE_ORDER}
    )


def hit_weights(
    override: Mapping[Rarity, float] | None, available: set[Rarity]
) -> dict[Rarity, float]:
    """Final hit-tier weights for a pack given what the pool can currently supply."""
    configured = configured_weights(override)
    adjusted = zero_unavailable(configured, available)
    if not any(adjusted.values()):
        return configured
    return adjusted


def roll_hit_tier(weights: Mapping[Rarity, float], rng: random.Random) -> Rarity:
    """One weighted categorical roll over the rarity tiers."""
    tiers = list(CASCADE_ORDER)
    return rng.choices(tiers, weights=[weights.get(t, 0.0) for t in tiers], k=1)[0]


def roll_bulk_rarity(rng: random.Random) -> Rarity:
    return Rarity.RARE if rng.random() < BULK_RARE_CHANCE else Rarity.UNCOMMON


def allocate_slots(
    cards_per_pack: int,
    weights: Mapping[Rarity, float],
    rng: random.Random,
) -> list[Rarity]:
    """
    Target rarity for every slot of one pack, in shuffled order.

    Args:
        cards_per_pack: Number of slots (at least 1)
        weights: Final hit-tier weights (see `hit_weights`)
        rng: Random source

    Returns:
        One hit rarity plus `cards_per_pack - 1` bulk rarities, shuffled
    """
    if cards_per_pack <= 0:
        return []
    slots = [roll_hit_tier(weights, rng)]
    slots.extend(roll_bulk_rarity(rng) for _ in range(cards_per_pack - 1))
    rng.shuffle(slots)
    return slots
