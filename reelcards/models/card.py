"""
Card Models.

Templates are the obtainable entries of the character pool; instances are
the cards users actually own.

INVARIANTS:
- A template's slot identity is `alt_art_of_template_id or template_id`
- Scarcity and completion are always keyed by slot identity, never template id
- A card's rarity is the GRANTED rarity, which may differ from its template's
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Rarity(str, Enum):
    """Card rarity tiers, lowest first."""

    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @classmethod
    def parse(cls, value: str | None) -> "Rarity":
        """Read a stored rarity; legacy "common" and unknown values map to uncommon."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNCOMMON

    def next_tier(self) -> "Rarity | None":
        """The rarity a trade-up escalates to, or None at the top."""
        idx = RARITY_ORDER.index(self)
        return RARITY_ORDER[idx + 1] if idx < len(RARITY_ORDER) - 1 else None


class Finish(str, Enum):
    """Cosmetic finish tiers, lowest first."""

    NORMAL = "normal"
    HOLO = "holo"
    PRISMATIC = "prismatic"
    DARK_MATTER = "darkMatter"

    @property
    def label(self) -> str:
        return FINISH_LABELS[self]

    def rank(self) -> int:
        return FINISH_ORDER.index(self)


RARITY_ORDER: tuple[Rarity, ...] = (
    Rarity.UNCOMMON,
    Rarity.RARE,
    Rarity.EPIC,
    Rarity.LEGENDARY,
)

# Highest first; the order tiers are searched when a slot cascades downward
CASCADE_ORDER: tuple[Rarity, ...] = tuple(reversed(RARITY_ORDER))

FINISH_ORDER: tuple[Finish, ...] = (
    Finish.NORMAL,
    Finish.HOLO,
    Finish.PRISMATIC,
    Finish.DARK_MATTER,
)

FINISH_LABELS: dict[Finish, str] = {
    Finish.NORMAL: "Normal",
    Finish.HOLO: "Holo",
    Finish.PRISMATIC: "Prismatic",
    Finish.DARK_MATTER: "Dark Matter",
}

# Built-in card types; any other type id is accepted as-is
ACTOR_TYPE = "actor"
NON_ACTOR_TYPE = "character"


@dataclass(frozen=True, slots=True)
class CardTemplate:
    """
    An obtainable entry in the character pool.

    Attributes:
        template_id: Stable key, unique per character-in-movie-in-source
        character_type: Card type tag ("actor", "character", ...)
        rarity: Natural rarity of the template
        movie_id: Movie the character belongs to
        movie_title: Display title of the movie
        actor_name: Performer name (empty for scenes)
        character_name: Character name
        image_path: Artwork path; templates without artwork never drop
        alt_art_of_template_id: Set when this is an alternate depiction of another template
    """

    template_id: str
    character_type: str
    rarity: Rarity
    movie_id: int
    movie_title: str = ""
    actor_name: str = ""
    character_name: str = ""
    image_path: str = ""
    alt_art_of_template_id: str | None = None

    @property
    def slot_id(self) -> str:
        """Identity shared by a template and all of its alternate depictions."""
        return self.alt_art_of_template_id or self.template_id

    @property
    def is_alt_art(self) -> bool:
        return self.alt_art_of_template_id is not None

    @property
    def has_artwork(self) -> bool:
        return bool(self.image_path and self.image_path.strip())


@dataclass(frozen=True, slots=True)
class CardInstance:
    """An owned card, with display fields copied from its template at mint time."""

    id: int
    owner_id: str
    template_id: str
    rarity: Rarity
    finish: Finish
    character_type: str
    movie_id: int
    movie_title: str = ""
    actor_name: str = ""
    character_name: str = ""
    image_path: str = ""
    acquired_at: datetime | None = None
