from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ReelCards"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/reelcards"

    # Legacy pack used when a purchase names no pack
    default_pack_price: int = 50
    default_cards_per_pack: int = 5

    # Epic -> legendary trade-up: chance of a card, otherwise a credit payout
    epic_to_legendary_chance: float = 0.33
    trade_up_epic_credit_reward: int = 100


settings = Settings()


# =============================================================================
# CONSUMPTION SIZES
# =============================================================================

# Cards consumed by one trade-up
TRADE_UP_CARD_COUNT = 4

# Legendary cards consumed by one reroll
REROLL_CARD_COUNT = 2
