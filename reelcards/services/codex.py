"""
Codex uploads.

Uploading consumes an owned card and records its template as unlocked at the
card's finish tier. Higher-tier badges are computed from these unlocks.
Uploading a legendary does not release its scarcity slot.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import (
    add_codex_unlock,
    get_card,
    get_codex_unlocks,
    get_listed_card_ids,
    remove_owned_cards,
)
from reelcards.models.card import Finish
from reelcards.models.db import CodexUnlockDB
from reelcards.models.failure import FailureKind, KnownError, NotFoundError
from reelcards.services.selection import CardListedError, CardsChangedError, NotOwnedError

logger = logging.getLogger(__name__)


class AlreadyUnlockedError(KnownError):
    def __init__(self, template_id: str, finish: Finish):
        super().__init__(
            kind=FailureKind.ALREADY_UNLOCKED,
            message="Already in your codex",
            detail=f"{template_id} is unlocked at {finish.label}",
            status_code=409,
        )


async def upload_to_codex(session: AsyncSession, user_id: str, card_id: int) -> CodexUnlockDB:
    """
    Consume a card and unlock its template in the user's codex.

    Raises:
        NotFoundError: Card does not exist
        NotOwnedError: Card belongs to someone else
        CardListedError: Card is listed on the marketplace
        AlreadyUnlockedError: Template already unlocked at this finish
    """
    card = await get_card(session, card_id)
    if card is None:
        raise NotFoundError("Card not found")
    if card.owner_id != user_id:
        raise NotOwnedError("Not your card")
    if await get_listed_card_ids(session, [card_id]):
        raise CardListedError("upload")

    finish = Finish(card.finish) if card.finish in Finish._value2member_map_ else Finish.NORMAL
    template_id = card.template_id
    unlocks = await get_codex_unlocks(session, user_id)
    if template_id in unlocks[finish]:
        raise AlreadyUnlockedError(template_id, finish)

    removed = await remove_owned_cards(session, user_id, [card_id])
    if removed != 1:
        raise CardsChangedError(1, removed)

    unlock = await add_codex_unlock(session, user_id, template_id, finish)
    logger.debug("%s unlocked %s at %s", user_id, template_id, finish.value)
    return unlock
