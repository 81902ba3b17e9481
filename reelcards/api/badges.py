"""
Badge API endpoints.

Earned badges, per-tier progress and the profile showcase.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.api.schemas import BadgeResponse
from reelcards.db.database import get_session
from reelcards.services.completion import (
    get_badge_progress,
    get_displayed_badge_for_user,
    get_user_badges,
    set_displayed_badge,
)

router = APIRouter(prefix="/badges", tags=["badges"])


class BadgeListResponse(BaseModel):
    user_id: str
    badges: list[BadgeResponse] = Field(default_factory=list)
    displayed: BadgeResponse | None = None


class BadgeProgressResponse(BaseModel):
    """Completed movie ids per finish tier."""

    user_id: str
    completed: dict[str, list[int]] = Field(default_factory=dict)


class DisplayedBadgeRequest(BaseModel):
    movie_id: int | None = Field(default=None, description="Movie to showcase; null clears it")


class DisplayedBadgeResponse(BaseModel):
    user_id: str
    badge: BadgeResponse | None = None


@router.get("/{user_id}", response_model=BadgeListResponse)
async def get_badges(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BadgeListResponse:
    """Get a user's earned badges and the one on display."""
    badges = await get_user_badges(session, user_id)
    displayed = await get_displayed_badge_for_user(session, user_id)
    return BadgeListResponse(
        user_id=user_id,
        badges=[BadgeResponse.from_badge(b) for b in badges],
        displayed=BadgeResponse.from_badge(displayed) if displayed else None,
    )


@router.get("/{user_id}/progress", response_model=BadgeProgressResponse)
async def get_progress(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> BadgeProgressResponse:
    progress = await get_badge_progress(session, user_id)
    return BadgeProgressResponse(
        user_id=user_id,
        completed={tier.value: movies for tier, movies in progress.completed.items()},
    )


@router.put("/{user_id}/displayed", response_model=DisplayedBadgeResponse)
async def put_displayed_badge(
    user_id: str,
    request: DisplayedBadgeRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DisplayedBadgeResponse:
    """
    Choose the movie to showcase.

    The stored choice only shows a badge while the movie is complete.
    """
    await set_displayed_badge(session, user_id, request.movie_id)
    badge = await get_displayed_badge_for_user(session, user_id)
    return DisplayedBadgeResponse(
        user_id=user_id,
        badge=BadgeResponse.from_badge(badge) if badge else None,
    )
