"""
Card API endpoints.

Collection listing plus the card-consuming operations: trade-up, legendary
reroll and codex upload.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.api.schemas import BadgeResponse, CardResponse
from reelcards.db.database import get_session
from reelcards.db.operations import list_cards_by_owner
from reelcards.services.codex import upload_to_codex
from reelcards.services.completion import get_badges_lost_if_cards_removed
from reelcards.services.trade_up import legendary_reroll, trade_up

router = APIRouter(prefix="/cards", tags=["cards"])


class CardListResponse(BaseModel):
    user_id: str
    cards: list[CardResponse] = Field(default_factory=list)
    total: int = 0


class CardSelectionRequest(BaseModel):
    """A user's selection of cards to consume."""

    user_id: str = Field(..., min_length=1)
    card_ids: list[int] = Field(..., examples=[[11, 12, 13, 14]])


class TradeUpResponse(BaseModel):
    """Either the new card or the credits paid out."""

    card: CardResponse | None = None
    credits: int | None = None


class RerollResponse(BaseModel):
    card: CardResponse


class CodexUploadRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    card_id: int


class CodexUploadResponse(BaseModel):
    template_id: str
    finish: str


class BadgesLostResponse(BaseModel):
    badges: list[BadgeResponse] = Field(default_factory=list)


@router.get("/{user_id}", response_model=CardListResponse)
async def get_cards(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CardListResponse:
    """Get every card a user owns, oldest first."""
    cards = [CardResponse.from_row(row) for row in await list_cards_by_owner(session, user_id)]
    return CardListResponse(user_id=user_id, cards=cards, total=len(cards))


@router.post("/trade-up", response_model=TradeUpResponse)
async def post_trade_up(
    request: CardSelectionRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> TradeUpResponse:
    """Consume 4 cards of one rarity and type for one of the next tier."""
    result = await trade_up(session, request.user_id, request.card_ids)
    if result.card is None:
        return TradeUpResponse(credits=result.credits)
    return TradeUpResponse(card=CardResponse.from_row(result.card))


@router.post("/legendary-reroll", response_model=RerollResponse)
async def post_legendary_reroll(
    request: CardSelectionRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RerollResponse:
    """Consume 2 legendary cards for a different legendary."""
    card = await legendary_reroll(session, request.user_id, request.card_ids)
    return RerollResponse(card=CardResponse.from_row(card))


@router.post("/codex", response_model=CodexUploadResponse)
async def post_codex_upload(
    request: CodexUploadRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CodexUploadResponse:
    """Upload a card to the codex, consuming it."""
    unlock = await upload_to_codex(session, request.user_id, request.card_id)
    return CodexUploadResponse(template_id=unlock.template_id, finish=unlock.finish)


@router.post("/badges-lost", response_model=BadgesLostResponse)
async def post_badges_lost(
    request: CardSelectionRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BadgesLostResponse:
    """Preview which badges would be lost if the selected cards were removed."""
    badges = await get_badges_lost_if_cards_removed(session, request.user_id, request.card_ids)
    return BadgesLostResponse(badges=[BadgeResponse.from_badge(b) for b in badges])
