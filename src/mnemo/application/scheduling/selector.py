"""
Algorithm selection and SM-2 -> FSRS migration.

Each card names the scheduler that owns it. ``AlgorithmSelector`` keeps one
``ReviewScheduler`` per algorithm and dispatches on ``CardState.algorithm``,
so callers never branch on the algorithm themselves.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime

from mnemo.application.utils.common import clamp, round_half_up, utcnow
from mnemo.application.utils.text import format_interval
from mnemo.domain.constants import (
    FSRS_MAX_DIFFICULTY,
    FSRS_MIN_DIFFICULTY,
    MASTERED_MIN_SCHEDULED_DAYS,
    MASTERED_MIN_STABILITY,
    MIGRATION_EASINESS_SPAN,
    SECONDS_PER_DAY,
    SM2_INITIAL_EASINESS,
    SM2_MIN_EASINESS,
)
from mnemo.domain.progress.models import Algorithm, CardState, DisplayState, FsrsState, Rating

from .fsrs import FsrsCard, FsrsScheduler
from .ledger import record_review
from .ratings import quality_to_rating, rating_to_quality, validate_quality, validate_rating
from .sm2 import process_sm2

logger = logging.getLogger(__name__)

_FSRS_TO_DISPLAY = {
    FsrsState.NEW: DisplayState.NEW,
    FsrsState.LEARNING: DisplayState.LEARNING,
    FsrsState.REVIEW: DisplayState.REVIEW,
    FsrsState.RELEARNING: DisplayState.RELEARNING,
}

# Mastered is just a long-interval review
_DISPLAY_TO_FSRS = {
    DisplayState.NEW: FsrsState.NEW,
    DisplayState.LEARNING: FsrsState.LEARNING,
    DisplayState.REVIEW: FsrsState.REVIEW,
    DisplayState.RELEARNING: FsrsState.RELEARNING,
    DisplayState.MASTERED: FsrsState.REVIEW,
}


@dataclass(frozen=True)
class PreviewOption:
    """What pressing one rating would do."""

    rating: Rating
    scheduled_days: int
    due: datetime
    interval: str  # human-readable delay until ``due``


class ReviewScheduler(ABC):
    """A scheduler that can process one review of a card it owns."""

    algorithm: Algorithm

    @abstractmethod
    def review(
        self,
        state: CardState,
        rating: int,
        response_time_ms: int | None,
        now: datetime,
    ) -> CardState:
        pass


class Sm2ReviewScheduler(ReviewScheduler):
    """Legacy SM-2; ``rating`` is a quality 0-5."""

    algorithm = Algorithm.SM2

    def review(self, state, rating, response_time_ms, now):
        return process_sm2(state, rating, response_time_ms, now)


class FsrsReviewScheduler(ReviewScheduler):
    """FSRS; ``rating`` is a grade 1-4."""

    algorithm = Algorithm.FSRS

    def __init__(self, scheduler: FsrsScheduler):
        self.scheduler = scheduler

    @staticmethod
    def to_card(state: CardState, now: datetime) -> FsrsCard:
        return FsrsCard(
            due=state.next_review_date or now,
            stability=state.stability,
            difficulty=state.difficulty,
            elapsed_days=state.elapsed_days,
            scheduled_days=state.scheduled_days,
            learning_steps=state.learning_steps,
            reps=state.total_reviews,
            lapses=state.lapses,
            state=state.fsrs_state,
            last_review=state.last_review_date,
        )

    @staticmethod
    def apply_card(state: CardState, card: FsrsCard) -> CardState:
        display = _FSRS_TO_DISPLAY[card.state]
        if (
            card.stability > MASTERED_MIN_STABILITY
            and card.scheduled_days > MASTERED_MIN_SCHEDULED_DAYS
        ):
            display = DisplayState.MASTERED
        return replace(
            state,
            next_review_date=card.due,
            stability=card.stability,
            difficulty=card.difficulty,
            elapsed_days=card.elapsed_days,
            scheduled_days=card.scheduled_days,
            learning_steps=card.learning_steps,
            lapses=card.lapses,
            fsrs_state=card.state,
            state=display,
            # Keep the legacy interval in step with FSRS
            interval=card.scheduled_days,
        )

    def review(self, state, rating, response_time_ms, now):
        outcome = self.scheduler.next(self.to_card(state, now), now, rating)
        updated = self.apply_card(state, outcome.card)
        return record_review(
            state,
            updated,
            now=now,
            rating=int(outcome.rating),
            correct=outcome.rating >= Rating.GOOD,
            response_time_ms=response_time_ms,
        )

    def preview(self, state: CardState, now: datetime) -> dict[Rating, PreviewOption]:
        outcomes = self.scheduler.repeat(self.to_card(state, now), now)
        return {
            rating: PreviewOption(
                rating=rating,
                scheduled_days=outcome.card.scheduled_days,
                due=outcome.card.due,
                interval=format_interval(
                    (outcome.card.due - now).total_seconds() / SECONDS_PER_DAY
                ),
            )
            for rating, outcome in outcomes.items()
        }

    def retrievability(self, state: CardState, now: datetime) -> float:
        return self.scheduler.retrievability(self.to_card(state, now), now)


def migrate_to_fsrs(state: CardState) -> CardState:
    """
    Convert an SM-2 card to FSRS. No-op for cards already on FSRS.

    This is a heuristic bridge, not a fitted conversion:
    - difficulty = round(10 - ((EF - 1.3) / 1.2) * 9), clamped to [1, 10]
    - stability = current interval
    - FSRS state from the display state (mastered -> Review)
    """
    if state.algorithm == Algorithm.FSRS:
        return state

    difficulty = round_half_up(
        10 - ((state.easiness_factor - SM2_MIN_EASINESS) / MIGRATION_EASINESS_SPAN) * 9
    )
    return replace(
        state,
        algorithm=Algorithm.FSRS,
        difficulty=float(clamp(difficulty, FSRS_MIN_DIFFICULTY, FSRS_MAX_DIFFICULTY)),
        stability=float(state.interval),
        fsrs_state=_DISPLAY_TO_FSRS[state.state],
        elapsed_days=0,
        scheduled_days=state.interval,
        learning_steps=0,
    )


def reset_schedule(state: CardState, now: datetime) -> CardState:
    """
    Put a card back to New, due now.

    The owning algorithm, the ledger and the review counters are kept.
    """
    return replace(
        state,
        easiness_factor=SM2_INITIAL_EASINESS,
        repetitions=0,
        interval=0,
        stability=0.0,
        difficulty=0.0,
        elapsed_days=0,
        scheduled_days=0,
        learning_steps=0,
        fsrs_state=FsrsState.NEW,
        state=DisplayState.NEW,
        lapses=0,
        next_review_date=now,
    )


class AlgorithmSelector:
    """
    Dispatches reviews and queries to the scheduler that owns each card.
    """

    def __init__(self, fsrs: FsrsScheduler | None = None):
        self.fsrs = FsrsReviewScheduler(fsrs or FsrsScheduler())
        self.sm2 = Sm2ReviewScheduler()
        self._schedulers: dict[Algorithm, ReviewScheduler] = {
            Algorithm.SM2: self.sm2,
            Algorithm.FSRS: self.fsrs,
        }

    def normalize_rating(self, state: CardState, rating: int, is_legacy_input: bool) -> int:
        """
        Translate the caller's rating into the owning scheduler's scale.

        Legacy input is an SM-2 quality (0-5); otherwise it is an FSRS grade (1-4).
        """
        if state.algorithm == Algorithm.SM2:
            return validate_quality(rating) if is_legacy_input else rating_to_quality(rating)
        return int(quality_to_rating(rating) if is_legacy_input else validate_rating(rating))

    def process_review(
        self,
        state: CardState,
        rating: int,
        response_time_ms: int | None = None,
        is_legacy_input: bool = False,
        now: datetime | None = None,
    ) -> CardState:
        """
        Process one review and return the new state, ledger entry included.

        Raises:
            InvalidRatingError: Before any state is built, for a malformed rating.
        """
        now = now or utcnow()
        value = self.normalize_rating(state, rating, is_legacy_input)
        return self._schedulers[state.algorithm].review(state, value, response_time_ms, now)

    def _fsrs_view(self, state: CardState) -> CardState:
        # SM-2 cards are previewed as they would look after migration
        return migrate_to_fsrs(state)

    def preview(self, state: CardState, now: datetime | None = None) -> dict[Rating, PreviewOption]:
        return self.fsrs.preview(self._fsrs_view(state), now or utcnow())

    def retrievability(self, state: CardState, now: datetime | None = None) -> float:
        return self.fsrs.retrievability(self._fsrs_view(state), now or utcnow())

    def migrate(self, state: CardState) -> CardState:
        if state.algorithm == Algorithm.FSRS:
            logger.info(f"Card {state.flashcard_id} for {state.user_id} already uses FSRS")
        return migrate_to_fsrs(state)

