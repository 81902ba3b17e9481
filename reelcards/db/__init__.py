from reelcards.db.database import get_session, init_db
from reelcards.db.operations import (
    card_to_model,
    claim_legendary_slot,
    credit_credits,
    debit_credits,
    get_balance,
    get_character_pool,
    get_claimed_slot_ids,
    get_pack,
    list_cards_by_owner,
    list_packs,
    pack_to_model,
    reclaim_legendary_slot,
    remove_owned_cards,
    template_to_model,
    upsert_pack,
    upsert_template,
)

__all__ = [
    "card_to_model",
    "claim_legendary_slot",
    "credit_credits",
    "debit_credits",
    "get_balance",
    "get_character_pool",
    "get_claimed_slot_ids",
    "get_pack",
    "get_session",
    "init_db",
    "list_cards_by_owner",
    "list_packs",
    "pack_to_model",
    "reclaim_legendary_slot",
    "remove_owned_cards",
    "template_to_model",
    "upsert_pack",
    "upsert_template",
]
