"""
Scarcity Tracker — Global One-of-One Legendaries.

Every legendary slot identity can be awarded to at most one card across the
whole user base. The set of awarded slots lives in storage, keyed by slot
identity, and is grown with an atomic insert-if-absent.

INVARIANTS:
- A legendary card is never minted for a slot that is already awarded
- Check and insert are one statement; a lost race is retried with the
  slot excluded, never silently double-awarded
- Awarded slots are not freed when their card disappears; they can only be
  handed over through an explicit reclaim when the holder no longer exists
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import (
    claim_legendary_slot,
    delete_card,
    get_claimed_slot_ids,
    get_living_slot_ids,
    get_slot_holder,
    insert_card,
    reclaim_legendary_slot,
)
from reelcards.models.card import CardTemplate, Finish, Rarity
from reelcards.models.db import CardDB
from reelcards.models.failure import ConflictError, FailureKind

logger = logging.getLogger(__name__)


class ScarcityConflictError(ConflictError):
    """Another request awarded the same legendary slot at the same moment."""

    def __init__(self, slot_id: str):
        self.slot_id = slot_id
        super().__init__(
            kind=FailureKind.SCARCITY_CONFLICT,
            message="That legendary was just claimed by someone else. Please try again.",
            detail=f"Legendary slot {slot_id} claimed concurrently",
        )


class ScarcityTracker:
    """
    Request-scoped view of the awarded legendary slots.

    Slots claimed through this tracker are added to its cached set, so picks
    later in the same request exclude them without another query.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._claimed: set[str] | None = None

    async def claimed_slot_ids(self) -> set[str]:
        """Awarded slot identities, including claims made by this request."""
        if self._claimed is None:
            self._claimed = await get_claimed_slot_ids(self._session)
        return set(self._claimed)

    async def living_slot_ids(self) -> set[str]:
        """Awarded slots whose holder still exists as a legendary card."""
        return await get_living_slot_ids(self._session)

    async def claim(self, slot_id: str, card_id: int) -> bool:
        """
        Award a never-awarded slot to `card_id`.

        Returns False if the slot was already awarded.

        Raises:
            ScarcityConflictError: A concurrent request inserted the same slot
        """
        try:
            claimed = await claim_legendary_slot(self._session, slot_id, card_id)
        except IntegrityError as e:
            raise ScarcityConflictError(slot_id) from e
        await self._remember(slot_id)
        if not claimed:
            logger.warning("Legendary slot %s was awarded before it could be claimed", slot_id)
        return claimed

    async def reclaim(self, slot_id: str, card_id: int) -> bool:
        """
        Hand an awarded slot to `card_id` if its previous holder is gone.

        The holder read here is the expected value of the compare-and-swap, so
        a concurrent reclaim that already replaced it makes this one fail.
        """
        holder_id = await get_slot_holder(self._session, slot_id)
        if holder_id is None:
            return False
        reclaimed = await reclaim_legendary_slot(self._session, slot_id, card_id, holder_id)
        if reclaimed:
            logger.info("Legendary slot %s re-awarded to card %s", slot_id, card_id)
        else:
            logger.warning(
                "Legendary slot %s changed holder before it could be reclaimed", slot_id
            )
        return reclaimed

    async def _remember(self, slot_id: str) -> None:
        if self._claimed is None:
            self._claimed = await get_claimed_slot_ids(self._session)
        self._claimed.add(slot_id)


async def mint_card(
    session: AsyncSession,
    tracker: ScarcityTracker,
    owner_id: str,
    template: CardTemplate,
    rarity: Rarity,
    finish: Finish,
    allow_reclaim: bool = False,
) -> CardDB | None:
    """
    Mint a card, awarding its legendary slot when the granted rarity is legendary.

    Args:
        allow_reclaim: Also accept a slot whose previous holder no longer exists

    Returns:
        The new card, or None if its legendary slot could not be awarded
        (the card is not kept in that case and the caller should re-pick)
    """
    card = await insert_card(session, owner_id, template, rarity, finish)
    if rarity != Rarity.LEGENDARY:
        return card

    slot_id = template.slot_id
    if slot_id not in await tracker.claimed_slot_ids() and await tracker.claim(slot_id, card.id):
        return card
    if allow_reclaim and await tracker.reclaim(slot_id, card.id):
        return card

    await delete_card(session, card)
    return None
