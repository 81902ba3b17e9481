from reelcards.models.badge import Badge, BadgeProgress
from reelcards.models.card import (
    CASCADE_ORDER,
    FINISH_ORDER,
    RARITY_ORDER,
    CardInstance,
    CardTemplate,
    Finish,
    Rarity,
)
from reelcards.models.failure import (
    ApiResponse,
    ConflictError,
    FailureDetail,
    FailureKind,
    KnownError,
    NotFoundError,
    OutcomeType,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from reelcards.models.pack import FinishChances, PackConfig, RestockPolicy

__all__ = [
    # Cards
    "CASCADE_ORDER",
    "FINISH_ORDER",
    "RARITY_ORDER",
    "CardInstance",
    "CardTemplate",
    "Finish",
    "Rarity",
    # Packs
    "FinishChances",
    "PackConfig",
    "RestockPolicy",
    # Badges
    "Badge",
    "BadgeProgress",
    # Failures
    "ApiResponse",
    "ConflictError",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "NotFoundError",
    "OutcomeType",
    "create_unknown_failure",
    "finalize_response",
    "is_finalized",
]
