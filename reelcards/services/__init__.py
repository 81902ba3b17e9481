"""
ReelCards services.

The card engine: rarity and finish rolling, scarcity, packs, trade-ups,
codex uploads and badge completion.
"""
