"""
Domain models for per-user flashcard progress.

These are pure data structures with no I/O or external dependencies.
Scheduling code never mutates them; it builds new values with
``dataclasses.replace``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum, IntEnum

from mnemo.domain.constants import SM2_INITIAL_EASINESS


class Algorithm(str, Enum):
    """Which scheduler owns a card."""

    SM2 = "sm2"
    FSRS = "fsrs"


class FsrsState(IntEnum):
    """FSRS card state, stored as 0-3."""

    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


class DisplayState(str, Enum):
    """Coarse learning state shown to users and used by queue queries."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"
    MASTERED = "mastered"


class Rating(IntEnum):
    """FSRS grade (button pressed)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    One processed review in a card's ledger.

    Attributes:
        timestamp: When the review happened (timezone-aware).
        rating: FSRS rating (1-4) or SM-2 quality (0-5), depending on algorithm.
        response_time_ms: Time taken to answer, if the caller measured it.
        interval_before: Interval in days before the review.
        interval_after: Interval in days assigned by the review.
        algorithm: Scheduler that processed the review.
    """

    timestamp: datetime
    rating: int
    response_time_ms: int | None
    interval_before: int
    interval_after: int
    algorithm: Algorithm


@dataclass(frozen=True)
class CardState:
    """
    Scheduling state for one (user, flashcard) pair.

    FSRS and SM-2 fields live side by side; ``algorithm`` says which set is
    authoritative. ``review_history`` is append-only.
    """

    user_id: str
    flashcard_id: str
    algorithm: Algorithm = Algorithm.FSRS

    # FSRS
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    learning_steps: int = 0
    fsrs_state: FsrsState = FsrsState.NEW

    # SM-2
    easiness_factor: float = SM2_INITIAL_EASINESS
    repetitions: int = 0
    interval: int = 0

    # Shared
    next_review_date: datetime | None = None
    last_review_date: datetime | None = None
    last_rating: int | None = None
    total_reviews: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    average_response_time_ms: float = 0.0
    lapses: int = 0
    is_suspended: bool = False
    state: DisplayState = DisplayState.NEW
    review_history: tuple[ReviewLogEntry, ...] = ()

    @classmethod
    def create(cls, user_id: str, flashcard_id: str, now: datetime) -> "CardState":
        """Default state for a pair seen for the first time: FSRS, New, due now."""
        return cls(user_id=user_id, flashcard_id=flashcard_id, next_review_date=now)

    @property
    def key(self) -> tuple[str, str]:
        return (self.user_id, self.flashcard_id)

    def is_due(self, now: datetime) -> bool:
        if self.is_suspended or self.next_review_date is None:
            return False
        return self.next_review_date <= now
