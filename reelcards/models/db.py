"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class CharacterTemplateDB(Base):
    """
    An obtainable character in the pool.

    Written by the cast ingestion job; read-only to the card engine.
    """

    __tablename__ = "character_templates"

    template_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    character_type: Mapped[str] = mapped_column(String(50), default="actor", index=True)
    rarity: Mapped[str] = mapped_column(String(20), index=True)
    movie_id: Mapped[int] = mapped_column(Integer, index=True)
    movie_title: Mapped[str] = mapped_column(String(255), default="")
    actor_name: Mapped[str] = mapped_column(String(255), default="")
    character_name: Mapped[str] = mapped_column(String(255), default="")
    image_path: Mapped[str] = mapped_column(String(512), default="")
    alt_art_of_template_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<CharacterTemplateDB(id={self.template_id}, rarity={self.rarity})>"


class CardDB(Base):
    """A card owned by a user."""

    __tablename__ = "cards"
    # Card ids are never reused, so a legendary slot holder id stays unambiguous
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(String(255), index=True)
    template_id: Mapped[str] = mapped_column(String(255), index=True)
    rarity: Mapped[str] = mapped_column(String(20), index=True)
    finish: Mapped[str] = mapped_column(String(20), default="normal")
    character_type: Mapped[str] = mapped_column(String(50), default="actor")

    # Display fields copied from the template at mint time
    movie_id: Mapped[int] = mapped_column(Integer, index=True)
    movie_title: Mapped[str] = mapped_column(String(255), default="")
    actor_name: Mapped[str] = mapped_column(String(255), default="")
    character_name: Mapped[str] = mapped_column(String(255), default="")
    image_path: Mapped[str] = mapped_column(String(512), default="")

    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<CardDB(id={self.id}, owner={self.owner_id}, rarity={self.rarity})>"


class LegendarySlotDB(Base):
    """
    A legendary slot identity that has been awarded.

    The primary key is the slot identity, so two legendaries for the same
    slot can never be recorded, even across concurrent requests.
    """

    __tablename__ = "legendary_slots"

    slot_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    holder_card_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<LegendarySlotDB(slot={self.slot_id}, holder={self.holder_card_id})>"


class PackDB(Base):
    """A purchasable pack configuration."""

    __tablename__ = "packs"

    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    price: Mapped[int] = mapped_column(Integer)
    cards_per_pack: Mapped[int] = mapped_column(Integer, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    coming_soon: Mapped[bool] = mapped_column(Boolean, default=False)
    discounted: Mapped[bool] = mapped_column(Boolean, default=False)
    discount_percent: Mapped[float] = mapped_column(Float, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    # Pool filters and weight override stored as JSON for flexibility
    allowed_rarities: Mapped[list[str]] = mapped_column(JSON, default=list)
    allowed_card_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    rarity_weights: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Finish settings; None means the engine default
    holo_chance: Mapped[float | None] = mapped_column(Float, nullable=True)
    prismatic_chance: Mapped[float | None] = mapped_column(Float, nullable=True)
    dark_matter_chance: Mapped[float | None] = mapped_column(Float, nullable=True)
    allow_prismatic: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_dark_matter: Mapped[bool] = mapped_column(Boolean, default=False)

    # Purchase limit
    max_purchases_per_window: Mapped[int] = mapped_column(Integer, default=0)
    restock_interval_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    restock_hour_utc: Mapped[int | None] = mapped_column(Integer, nullable=True)
    restock_minute_utc: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<PackDB(id={self.id}, name={self.name})>"


class CreditBalanceDB(Base):
    """A user's current credit balance."""

    __tablename__ = "credit_balances"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, default=0)


class CreditLedgerDB(Base):
    """
    One credit movement.

    Pack purchases are recorded here even when free, which is what purchase
    limits count.
    """

    __tablename__ = "credit_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    reason: Mapped[str] = mapped_column(String(50), index=True)
    pack_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    def __repr__(self) -> str:
        return f"<CreditLedgerDB(user={self.user_id}, amount={self.amount}, reason={self.reason})>"


class ListingDB(Base):
    """A card currently offered on the marketplace."""

    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), unique=True, index=True
    )
    seller_id: Mapped[str] = mapped_column(String(255), index=True)
    price: Mapped[int] = mapped_column(Integer)


class CodexUnlockDB(Base):
    """A template a user has discovered in the codex at one finish tier."""

    __tablename__ = "codex_unlocks"
    __table_args__ = (
        UniqueConstraint("user_id", "template_id", "finish", name="uq_codex_user_template_finish"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), index=True)
    template_id: Mapped[str] = mapped_column(String(255), index=True)
    finish: Mapped[str] = mapped_column(String(20))
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )


class ProfileDB(Base):
    """Profile preferences the card engine reads."""

    __tablename__ = "profiles"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    displayed_badge_movie_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
