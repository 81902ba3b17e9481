from dataclasses import dataclass, field

from reelcards.models.card import Finish


@dataclass(frozen=True, slots=True)
class Badge:
    """
    A completed movie set shown on a user's profile.

    Attributes:
        movie_id: Movie whose set was completed
        movie_title: Display title of the movie
        tier: Highest finish tier completed for the movie
    """

    movie_id: int
    movie_title: str
    tier: Finish


@dataclass
class BadgeProgress:
    """Completed movie ids per finish tier for one user."""

    completed: dict[Finish, list[int]] = field(default_factory=dict)

    def movies_at(self, tier: Finish) -> list[int]:
        return self.completed.get(tier, [])
