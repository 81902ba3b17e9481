"""
Tiered Cascade Selection.

Pack slots, trade-ups and rerolls all pick a template the same way: walk an
ordered list of rarity tiers and take a uniform pick from the first tier
that still has eligible templates after exclusion filters.

INVARIANTS:
- Filtering is monotonic (predicates only remove candidates)
- Tiers are searched strictly in the given order
- An exhausted cascade returns None; callers decide the fallback
"""

import random
from collections.abc import Callable, Iterable, Sequence

from reelcards.models.card import CASCADE_ORDER, RARITY_ORDER, CardTemplate, Rarity

# Predicate deciding whether a template may be picked at a given tier
TierPredicate = Callable[[CardTemplate, Rarity], bool]


def first_nonempty_tier(
    pool: Iterable[CardTemplate],
    tiers: Sequence[Rarity],
    eligible: TierPredicate | None = None,
) -> tuple[Rarity, list[CardTemplate]] | None:
    """
    Find the first tier with eligible templates.

    Args:
        pool: Candidate templates
        tiers: Rarity tiers to search, in order
        eligible: Extra exclusion predicate applied per tier

    Returns:
        (tier, candidates) for the first non-empty tier, or None
    """
    by_tier: dict[Rarity, list[CardTemplate]] = {}
    for template in pool:
        by_tier.setdefault(template.rarity, []).append(template)

    for tier in tiers:
        bucket = [
            t for t in by_tier.get(tier, []) if eligible is None or eligible(t, tier)
        ]
        if bucket:
            return tier, bucket
    return None


def cascade_pick(
    pool: Iterable[CardTemplate],
    tiers: Sequence[Rarity],
    rng: random.Random,
    eligible: TierPredicate | None = None,
) -> CardTemplate | None:
    """Uniform pick from the first non-empty tier, or None if every tier is empty."""
    found = first_nonempty_tier(pool, tiers, eligible)
    if found is None:
        return None
    return rng.choice(found[1])


def tiers_downward(start: Rarity) -> tuple[Rarity, ...]:
    """Tiers from `start` down to uncommon (legendary -> epic -> rare -> uncommon)."""
    return CASCADE_ORDER[CASCADE_ORDER.index(start) :]


def tiers_upward(start: Rarity) -> tuple[Rarity, ...]:
    """Tiers from `start` up to legendary."""
    return RARITY_ORDER[RARITY_ORDER.index(start) :]


def excluding_claimed_legendaries(claimed_slot_ids: set[str]) -> TierPredicate:
    """Exclude templates whose slot is already claimed, at the legendary tier only."""

    def predicate(template: CardTemplate, tier: Rarity) -> bool:
        return tier != Rarity.LEGENDARY or template.slot_id not in claimed_slot_ids

    return predicate


def all_of(*predicates: TierPredicate) -> TierPredicate:
    """Combine predicates; a template must satisfy every one."""

    def predicate(template: CardTemplate, tier: Rarity) -> bool:
        return all(p(template, tier) for p in predicates)

    return predicate
