"""
Shared response models for card and badge endpoints.
"""

from datetime import datetime

from pydantic import BaseModel

from reelcards.db.operations import card_to_model
from reelcards.models.badge import Badge
from reelcards.models.db import CardDB


class CardResponse(BaseModel):
    """A card owned by a user."""

    id: int
    owner_id: str
    template_id: str
    rarity: str
    finish: str
    character_type: str
    movie_id: int
    movie_title: str = ""
    actor_name: str = ""
    character_name: str = ""
    image_path: str = ""
    acquired_at: datetime | None = None

    @classmethod
    def from_row(cls, row: CardDB) -> "CardResponse":
        card = card_to_model(row)
        return cls(
            id=card.id,
            owner_id=card.owner_id,
            template_id=card.template_id,
            rarity=card.rarity.value,
            finish=card.finish.value,
            character_type=card.character_type,
            movie_id=card.movie_id,
            movie_title=card.movie_title,
            actor_name=card.actor_name,
            character_name=card.character_name,
            image_path=card.image_path,
            acquired_at=card.acquired_at,
        )


class BadgeResponse(BaseModel):
    """A movie badge at one finish tier."""

    movie_id: int
    movie_title: str
    tier: str
    tier_label: str

    @classmethod
    def from_badge(cls, badge: Badge) -> "BadgeResponse":
        return cls(
            movie_id=badge.movie_id,
            movie_title=badge.movie_title,
            tier=badge.tier.value,
            tier_label=badge.tier.label,
        )
