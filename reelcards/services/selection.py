"""
Card Selection Validation.

Trade-ups, rerolls and codex uploads all consume cards the user picked.
Selections are validated before any write: count, duplicates, ownership and
marketplace status, in that order.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import get_cards_by_ids, get_listed_card_ids
from reelcards.models.db import CardDB
from reelcards.models.failure import ConflictError, FailureKind, KnownError


class InvalidSelectionError(KnownError):
    def __init__(self, message: str):
        super().__init__(kind=FailureKind.INVALID_SELECTION, message=message)


class NotOwnedError(KnownError):
    def __init__(self, message: str = "You don't own one or more of these cards"):
        super().__init__(kind=FailureKind.NOT_OWNED, message=message)


class CardListedError(KnownError):
    def __init__(self, action: str):
        super().__init__(
            kind=FailureKind.CARD_LISTED,
            message=f"Cannot {action} cards listed on the marketplace",
            suggestion="Remove the listing first.",
        )


class RarityMismatchError(KnownError):
    def __init__(self, count: int):
        super().__init__(
            kind=FailureKind.RARITY_MISMATCH,
            message=f"All {count} cards must be the same rarity",
        )


class TypeMismatchError(KnownError):
    def __init__(self, count: int):
        super().__init__(
            kind=FailureKind.TYPE_MISMATCH,
            message=f"All {count} cards must be the same card type",
        )


class CardsChangedError(ConflictError):
    """Selected cards were sold, listed or consumed after validation."""

    def __init__(self, expected: int, removed: int):
        super().__init__(
            kind=FailureKind.CARDS_CHANGED,
            message="Some of the selected cards are no longer available",
            detail=f"Expected to remove {expected} cards, removed {removed}",
        )


async def load_selected_cards(
    session: AsyncSession,
    user_id: str,
    card_ids: list[int],
    count: int,
    action: str,
) -> list[CardDB]:
    """
    Load exactly `count` distinct owned, unlisted cards.

    Args:
        session: Database session
        user_id: User making the selection
        card_ids: Selected card ids
        count: Required selection size
        action: Verb for the marketplace message ("trade up", "reroll")

    Returns:
        The cards, in selection order

    Raises:
        InvalidSelectionError: Wrong count or duplicate ids
        NotOwnedError: A card does not exist or belongs to someone else
        CardListedError: A card is listed on the marketplace
    """
    if len(card_ids) != count:
        raise InvalidSelectionError(f"Select exactly {count} cards")
    if len(set(card_ids)) != count:
        raise InvalidSelectionError(f"Select {count} different cards")

    found = {card.id: card for card in await get_cards_by_ids(session, card_ids)}
    selected = []
    for card_id in card_ids:
        card = found.get(card_id)
        if card is None or card.owner_id != user_id:
            raise NotOwnedError()
        selected.append(card)

    if await get_listed_card_ids(session, card_ids):
        raise CardListedError(action)

    return selected


def require_same_type(cards: list[CardDB]) -> str:
    """Return the shared character type, or raise TypeMismatchError."""
    types = {card.character_type or "actor" for card in cards}
    if len(types) != 1:
        raise TypeMismatchError(len(cards))
    return types.pop()
