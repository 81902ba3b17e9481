"""
Pack Configuration Models.

Pack configuration is managed elsewhere; the engine only reads it.
"""

import re
from dataclasses import dataclass, field

from reelcards.models.card import NON_ACTOR_TYPE, Rarity

# Default per-pack chance of each finish
DEFAULT_HOLO_CHANCE = 0.08
DEFAULT_PRISMATIC_CHANCE = 0.02
DEFAULT_DARK_MATTER_CHANCE = 0.005

# Packs whose name normalizes to this never contain the non-actor type
CHARACTER_PACK_NAME = "character pack"


@dataclass(frozen=True, slots=True)
class FinishChances:
    """
    Finish roll settings for one minting context.

    Chances are probabilities in [0, 1]. Prismatic and dark matter only roll
    when explicitly permitted.
    """

    holo: float = DEFAULT_HOLO_CHANCE
    prismatic: float = DEFAULT_PRISMATIC_CHANCE
    dark_matter: float = DEFAULT_DARK_MATTER_CHANCE
    allow_prismatic: bool = False
    allow_dark_matter: bool = False


@dataclass(frozen=True, slots=True)
class RestockPolicy:
    """
    Per-user purchase limit for a pack.

    When `interval_hours` is set the limit applies to a rolling window;
    otherwise it resets daily at `hour_utc:minute_utc`.
    """

    max_purchases: int = 0
    interval_hours: float | None = None
    hour_utc: int = 0
    minute_utc: int = 0

    @property
    def enforced(self) -> bool:
        return self.max_purchases > 0

    @property
    def rolling_hours(self) -> float | None:
        """Length of the rolling window, or None for a daily reset."""
        if self.interval_hours is not None and self.interval_hours > 0:
            return self.interval_hours
        return None

    def reset_time(self) -> tuple[int, int]:
        """Daily reset (hour, minute) with out-of-range values read as zero."""
        hour = self.hour_utc if 0 <= self.hour_utc <= 23 else 0
        minute = self.minute_utc if 0 <= self.minute_utc <= 59 else 0
        return hour, minute


@dataclass(frozen=True)
class PackConfig:
    """
    A purchasable pack.

    Attributes:
        pack_id: Stable identifier ("default" for the legacy pack)
        name: Display name
        price: Base price in credits
        cards_per_pack: Number of card slots
        rarity_weights: Optional override of the hit-tier weights
        allowed_rarities: Natural rarities allowed in the pool (empty = all)
        allowed_card_types: Character types allowed in the pool (empty = all)
        finish: Finish roll settings for cards from this pack
        restock: Purchase limit settings
    """

    pack_id: str
    name: str
    price: int
    cards_per_pack: int
    rarity_weights: dict[Rarity, float] | None = None
    allowed_rarities: tuple[Rarity, ...] = ()
    allowed_card_types: tuple[str, ...] = ()
    finish: FinishChances = field(default_factory=FinishChances)
    restock: RestockPolicy = field(default_factory=RestockPolicy)
    is_active: bool = True
    is_free: bool = False
    coming_soon: bool = False
    discounted: bool = False
    discount_percent: float = 0
    sort_order: int = 0

    @property
    def effective_price(self) -> int:
        """Price actually charged, after free-pack and discount rules."""
        if self.is_free:
            return 0
        price = self.price
        if self.discounted and 0 < self.discount_percent <= 100:
            price = round(price * (100 - self.discount_percent) / 100)
        return max(price, 0)

    @property
    def is_character_pack(self) -> bool:
        return normalize_pack_name(self.name) == CHARACTER_PACK_NAME

    @property
    def is_type_restricted(self) -> bool:
        return bool(self.allowed_card_types) or self.is_character_pack

    def admits_type(self, character_type: str) -> bool:
        """True if cards of this character type may appear in the pack."""
        if self.is_character_pack and character_type == NON_ACTOR_TYPE:
            return False
        return not self.allowed_card_types or character_type in self.allowed_card_types

    def admits_rarity(self, rarity: Rarity) -> bool:
        return not self.allowed_rarities or rarity in self.allowed_rarities


def normalize_pack_name(name: str) -> str:
    """Lowercase and collapse whitespace, hyphens and underscores."""
    return re.sub(r"[\s_-]+", " ", name.strip().lower())
