"""Tests for set completion, badges and the displayed badge."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from reelcards.db.operations import add_codex_unlock, insert_card, upsert_template
from reelcards.models.badge import Badge
from reelcards.models.card import CardTemplate, Finish, Rarity
from reelcards.models.failure import NotFoundError
from reelcards.services.completion import (
    badge_tier,
    completed_tiers,
    get_badge_progress,
    get_badges_lost_if_cards_removed,
    get_displayed_badge_for_user,
    get_user_badges,
    is_normal_complete,
    is_tier_complete,
    movie_sets,
    set_displayed_badge,
)


def _template(template_id: str, movie_id: int = 1, **kwargs) -> CardTemplate:
    return CardTemplate(
        template_id=template_id,
        character_type=kwargs.pop("character_type", "actor"),
        rarity=kwargs.pop("rarity", Rarity.UNCOMMON),
        movie_id=movie_id,
        movie_title=kwargs.pop("movie_title", "Heat" if movie_id == 1 else "Alien"),
        image_path=kwargs.pop("image_path", f"/{template_id}.jpg"),
        **kwargs,
    )


HERO = _template("hero", rarity=Rarity.LEGENDARY)
VILLAIN = _template("villain", rarity=Rarity.RARE)
VILLAIN_ALT = _template("villain-alt", rarity=Rarity.RARE, alt_art_of_template_id="villain")
CAR = _template("car", character_type="scene")
HEAT = [HERO, VILLAIN, VILLAIN_ALT, CAR]

RIPLEY = _template("ripley", movie_id=2)


async def _seed(session: AsyncSession) -> None:
    for template in [*HEAT, RIPLEY, _template("no-art", movie_id=3, image_path="")]:
        await upsert_template(session, template)


async def _own(session: AsyncSession, user_id: str, *templates: CardTemplate) -> list[int]:
    ids = []
    for template in templates:
        card = await insert_card(session, user_id, template, template.rarity, Finish.NORMAL)
        ids.append(card.id)
    return ids


class TestCompletionRules:
    def test_movie_sets_skip_unobtainable(self) -> None:
        sets = movie_sets([*HEAT, RIPLEY, _template("x", movie_id=3, image_path="")])
        assert set(sets) == {1, 2}
        assert len(sets[1]) == 4

    def test_normal_completion_uses_slot_identity(self) -> None:
        assert is_normal_complete(HEAT, {"hero", "villain", "car"})
        assert not is_normal_complete(HEAT, {"hero", "villain"})

    def test_empty_set_is_never_complete(self) -> None:
        assert not is_normal_complete([], set())
        assert not is_tier_complete([], {"hero"})

    def test_tier_completion_counts_main_actor_slots(self) -> None:
        # Scene cards are not required above normal
        assert is_tier_complete(HEAT, {"hero", "villain"})
        assert not is_tier_complete(HEAT, {"hero", "car"})

    def test_alt_art_unlock_covers_main_slot(self) -> None:
        assert is_tier_complete(HEAT, {"hero", "villain-alt"})

    def test_no_main_templates(self) -> None:
        scenes = [_template("s1", character_type="scene")]
        assert not is_tier_complete(scenes, {"s1"})

    def test_completed_tiers(self) -> None:
        owned = {"hero", "villain", "car"}
        unlocks = {Finish.HOLO: {"hero", "villain"}, Finish.DARK_MATTER: {"hero", "villain"}}

        assert completed_tiers(HEAT, owned, unlocks) == [
            Finish.NORMAL,
            Finish.HOLO,
            Finish.DARK_MATTER,
        ]

    def test_badge_is_highest_tier(self) -> None:
        owned = {"hero", "villain", "car"}
        unlocks = {Finish.HOLO: {"hero", "villain"}, Finish.PRISMATIC: {"hero", "villain-alt"}}

        assert badge_tier(HEAT, owned, unlocks) == Finish.PRISMATIC

    def test_badge_requires_normal_completion(self) -> None:
        unlocks = {tier: {"hero", "villain"} for tier in Finish}
        assert badge_tier(HEAT, {"hero"}, unlocks) is None

    def test_removal_never_adds_completion(self) -> None:
        owned = {"hero", "villain", "car"}
        unlocks = {Finish.HOLO: {"hero", "villain"}}
        before = set(completed_tiers(HEAT, owned, unlocks))

        for slot in owned:
            after = set(completed_tiers(HEAT, owned - {slot}, unlocks))
            assert after <= before


class TestBadgeQueries:
    async def test_progress_lists_every_tier(self, session: AsyncSession) -> None:
        await _seed(session)
        await _own(session, "u1", HERO, VILLAIN_ALT, CAR, RIPLEY)
        await add_codex_unlock(session, "u1", "ripley", Finish.HOLO)

        progress = await get_badge_progress(session, "u1")

        assert progress.movies_at(Finish.NORMAL) == [1, 2]
        assert progress.movies_at(Finish.HOLO) == [2]
        assert progress.movies_at(Finish.PRISMATIC) == []
        assert set(progress.completed) == set(Finish)

    async def test_user_badges(self, session: AsyncSession) -> None:
        await _seed(session)
        await _own(session, "u1", HERO, VILLAIN, CAR, RIPLEY)
        await add_codex_unlock(session, "u1", "hero", Finish.HOLO)
        await add_codex_unlock(session, "u1", "villain", Finish.HOLO)

        badges = await get_user_badges(session, "u1")

        assert badges == [
            Badge(movie_id=1, movie_title="Heat", tier=Finish.HOLO),
            Badge(movie_id=2, movie_title="Alien", tier=Finish.NORMAL),
        ]

    async def test_codex_alone_earns_no_badge(self, session: AsyncSession) -> None:
        await _seed(session)
        await add_codex_unlock(session, "u1", "ripley", Finish.DARK_MATTER)

        assert await get_user_badges(session, "u1") == []


class TestDisplayedBadge:
    async def test_nothing_chosen(self, session: AsyncSession) -> None:
        assert await get_displayed_badge_for_user(session, "u1") is None

    async def test_resolves_highest_tier(self, session: AsyncSession) -> None:
        await _seed(session)
        await _own(session, "u1", RIPLEY)
        await add_codex_unlock(session, "u1", "ripley", Finish.PRISMATIC)

        await set_displayed_badge(session, "u1", 2)

        badge = await get_displayed_badge_for_user(session, "u1")
        assert badge == Badge(movie_id=2, movie_title="Alien", tier=Finish.PRISMATIC)

    async def test_incomplete_movie_shows_nothing(self, session: AsyncSession) -> None:
        await _seed(session)
        await _own(session, "u1", HERO)

        await set_displayed_badge(session, "u1", 1)

        assert await get_displayed_badge_for_user(session, "u1") is None

    async def test_clear_choice(self, session: AsyncSession) -> None:
        await _seed(session)
        await _own(session, "u1", RIPLEY)
        await set_displayed_badge(session, "u1", 2)

        await set_displayed_badge(session, "u1", None)

        assert await get_displayed_badge_for_user(session, "u1") is None

    async def test_unknown_movie(self, session: AsyncSession) -> None:
        await _seed(session)

        with pytest.raises(NotFoundError) as exc_info:
            await set_displayed_badge(session, "u1", 99)

        assert exc_info.value.message == "Movie not found"

    async def test_movie_without_obtainable_cards(self, session: AsyncSession) -> None:
        await _seed(session)

        with pytest.raises(NotFoundError):
            await set_displayed_badge(session, "u1", 3)


class TestBadgesLost:
    async def test_breaking_normal_loses_every_tier(self, session: AsyncSession) -> None:
        await _seed(session)
        hero_id, *_ = await _own(session, "u1", HERO, VILLAIN, CAR)
        await add_codex_unlock(session, "u1", "hero", Finish.HOLO)
        await add_codex_unlock(session, "u1", "villain", Finish.HOLO)

        lost = await get_badges_lost_if_cards_removed(session, "u1", [hero_id])

        assert [b.tier for b in lost] == [Finish.NORMAL, Finish.HOLO]
        assert {b.movie_id for b in lost} == {1}

    async def test_duplicate_keeps_completion(self, session: AsyncSession) -> None:
        await _seed(session)
        ids = await _own(session, "u1", HERO, VILLAIN, VILLAIN_ALT, CAR)

        # The alt-art still represents the villain slot
        assert await get_badges_lost_if_cards_removed(session, "u1", [ids[1]]) == []

    async def test_only_touched_movies(self, session: AsyncSession) -> None:
        await _seed(session)
        ids = await _own(session, "u1", HERO, VILLAIN, CAR, RIPLEY)

        lost = await get_badges_lost_if_cards_removed(session, "u1", [ids[3]])

        assert lost == [Badge(movie_id=2, movie_title="Alien", tier=Finish.NORMAL)]

    async def test_incomplete_movie_loses_nothing(self, session: AsyncSession) -> None:
        await _seed(session)
        ids = await _own(session, "u1", HERO)

        assert await get_badges_lost_if_cards_removed(session, "u1", ids) == []

    async def test_foreign_cards_ignored(self, session: AsyncSession) -> None:
        await _seed(session)
        ids = await _own(session, "u2", RIPLEY)
        await _own(session, "u1", RIPLEY)

        assert await get_badges_lost_if_cards_removed(session, "u1", ids) == []
