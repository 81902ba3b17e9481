"""
Pack API endpoints.

Lists the pack shop and opens packs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.api.schemas import CardResponse
from reelcards.db.database import get_session
from reelcards.db.operations import get_balance, list_packs, pack_to_model
from reelcards.services.packs import buy_pack

router = APIRouter(prefix="/packs", tags=["packs"])


class PackResponse(BaseModel):
    """A pack as shown in the shop."""

    pack_id: str
    name: str
    price: int
    effective_price: int
    cards_per_pack: int
    is_free: bool = False
    discounted: bool = False
    discount_percent: float = 0
    coming_soon: bool = False
    purchasable: bool = True
    max_purchases: int = Field(default=0, description="Purchases per restock window; 0 = unlimited")


class BuyPackRequest(BaseModel):
    """Request model for buying a pack."""

    user_id: str = Field(..., min_length=1)
    pack_id: str | None = Field(
        default=None,
        description="Pack to buy; omit for the standard pack",
    )


class BuyPackResponse(BaseModel):
    """Cards opened from a pack and the buyer's remaining balance."""

    cards: list[CardResponse]
    balance: int


@router.get("", response_model=list[PackResponse])
async def get_packs(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[PackResponse]:
    """List active packs in shop order."""
    packs = [pack_to_model(row) for row in await list_packs(session)]
    return [
        PackResponse(
            pack_id=pack.pack_id,
            name=pack.name,
            price=pack.price,
            effective_price=pack.effective_price,
            cards_per_pack=pack.cards_per_pack,
            is_free=pack.is_free,
            discounted=pack.discounted,
            discount_percent=pack.discount_percent,
            coming_soon=pack.coming_soon,
            purchasable=not pack.coming_soon,
            max_purchases=pack.restock.max_purchases,
        )
        for pack in packs
    ]


@router.post("/buy", response_model=BuyPackResponse)
async def post_buy_pack(
    request: BuyPackRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BuyPackResponse:
    """
    Buy and open a pack.

    Failures (unknown pack, purchase limit, not enough credits, empty pool)
    are returned as a known-failure envelope.
    """
    cards = await buy_pack(session, request.user_id, request.pack_id)
    return BuyPackResponse(
        cards=[CardResponse.from_row(card) for card in cards],
        balance=await get_balance(session, request.user_id),
    )
