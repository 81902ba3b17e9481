from reelcards.api.badges import router as badges_router
from reelcards.api.cards import router as cards_router
from reelcards.api.health import router as health_router
from reelcards.api.packs import router as packs_router

__all__ = [
    "badges_router",
    "cards_router",
    "health_router",
    "packs_router",
]
