"""
FSRS (Free Spaced Repetition Scheduler) adapter.

Wraps the ``fsrs`` library's ``Scheduler`` behind mnemo's own card view.

Key concepts:
- Stability (S): days until retrievability decays to 90%.
- Difficulty (D): inherent complexity of the material, 1-10.
- Retrievability (R): probability of successful recall right now.

The library has no New state (a never-reviewed card is Learning with no
memory state), keeps a failed card in Review when no relearning steps are
configured, and does not count lapses. Those rules are applied here on top of
the library's result.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from fsrs import Card, Scheduler, State
from fsrs import Rating as FsrsRating

from mnemo.application.utils.common import as_utc, clamp
from mnemo.domain.constants import (
    FSRS_DEFAULT_LEARNING_STEPS_MIN,
    FSRS_DEFAULT_MAX_INTERVAL,
    FSRS_DEFAULT_RELEARNING_STEPS_MIN,
    FSRS_DEFAULT_RETENTION,
    FSRS_MAX_DIFFICULTY,
    FSRS_MIN_DIFFICULTY,
)
from mnemo.domain.progress.models import FsrsState, Rating

from .ratings import validate_rating

logger = logging.getLogger(__name__)

# FSRS-5 weights in the library's 21-slot layout. w19 = 0 turns off the
# stability-dependent short-term term and w20 = 0.5 keeps the power curve at
# R = (1 + 19/81 * t / S) ^ -0.5.
DEFAULT_WEIGHTS: tuple[float, ...] = (
    0.40255,
    1.18385,
    3.173,
    15.69105,
    7.1949,
    0.5345,
    1.4604,
    0.0046,
    1.54575,
    0.1192,
    1.01925,
    1.9395,
    0.11,
    0.29605,
    2.2698,
    0.2315,
    2.9898,
    0.51655,
    0.6621,
    0.0,
    0.5,
)


def _minutes(values: tuple[float, ...]) -> tuple[timedelta, ...]:
    return tuple(timedelta(minutes=m) for m in values)


@dataclass(frozen=True)
class FsrsParameters:
    """
    Immutable scheduler configuration.

    Attributes:
        request_retention: Target probability of recall at the due date.
        maximum_interval: Upper bound on any scheduled interval, in days.
        enable_fuzz: Spread review-state intervals to avoid clustering.
        enable_short_term: Use learning and relearning steps. When off, cards
            graduate straight to day intervals.
        learning_steps: Delays for New/Learning cards before graduation.
        relearning_steps: Delays for lapsed cards before returning to Review.
        weights: The 21-value FSRS parameter vector.
    """

    request_retention: float = FSRS_DEFAULT_RETENTION
    maximum_interval: int = FSRS_DEFAULT_MAX_INTERVAL
    enable_fuzz: bool = True
    enable_short_term: bool = True
    learning_steps: tuple[timedelta, ...] = field(
        default_factory=lambda: _minutes(FSRS_DEFAULT_LEARNING_STEPS_MIN)
    )
    relearning_steps: tuple[timedelta, ...] = field(
        default_factory=lambda: _minutes(FSRS_DEFAULT_RELEARNING_STEPS_MIN)
    )
    weights: tuple[float, ...] = DEFAULT_WEIGHTS

    def __post_init__(self):
        if not 0.0 < self.request_retention < 1.0:
            raise ValueError(
                f"request_retention must be in (0, 1), got {self.request_retention}"
            )
        if self.maximum_interval < 1:
            raise ValueError(f"maximum_interval must be >= 1, got {self.maximum_interval}")
        if len(self.weights) != len(DEFAULT_WEIGHTS):
            raise ValueError(
                f"Expected {len(DEFAULT_WEIGHTS)} weights, got {len(self.weights)}"
            )
        object.__setattr__(self, "weights", tuple(float(w) for w in self.weights))
        object.__setattr__(self, "learning_steps", tuple(self.learning_steps))
        object.__setattr__(self, "relearning_steps", tuple(self.relearning_steps))


@dataclass(frozen=True)
class FsrsCard:
    """The subset of a card's state the FSRS model reads and writes."""

    due: datetime
    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    learning_steps: int = 0
    reps: int = 0
    lapses: int = 0
    state: FsrsState = FsrsState.NEW
    last_review: datetime | None = None


@dataclass(frozen=True)
class SchedulingOutcome:
    """Result of rating a card once."""

    rating: Rating
    card: FsrsCard
    retrievability: float | None  # at review time; None for New cards


class FsrsScheduler:
    """
    FSRS scheduler.

    Holds a read-only FsrsParameters instance, so one scheduler can be shared
    between concurrent reviews of different cards.
    """

    def __init__(self, parameters: FsrsParameters | None = None):
        self.params = parameters or FsrsParameters()
        self._scheduler = self._build(self.params.enable_fuzz)
        # Previews use exact intervals so they are the same every time
        self._exact = self._build(False) if self.params.enable_fuzz else self._scheduler

        logger.info(
            f"FSRS scheduler initialized: retention={self.params.request_retention} "
            f"max_interval={self.params.maximum_interval} fuzz={self.params.enable_fuzz} "
            f"short_term={self.params.enable_short_term}"
        )

    def _build(self, enable_fuzzing: bool) -> Scheduler:
        steps = self.params.enable_short_term
        return Scheduler(
            parameters=self.params.weights,
            desired_retention=self.params.request_retention,
            learning_steps=self.params.learning_steps if steps else (),
            relearning_steps=self.params.relearning_steps if steps else (),
            maximum_interval=self.params.maximum_interval,
            enable_fuzzing=enable_fuzzing,
        )

    # ------------------------------------------------------------------
    # Card mapping
    # ------------------------------------------------------------------

    @staticmethod
    def to_library_card(card: FsrsCard) -> Card:
        """
        Build the library's Card. Cards without a memory state (New, or
        reset) become a fresh Learning card on its first step.
        """
        if card.state == FsrsState.NEW or card.stability <= 0:
            return Card(card_id=0, state=State.Learning, step=0, due=as_utc(card.due))
        return Card(
            card_id=0,
            state=State(int(card.state)),
            step=None if card.state == FsrsState.REVIEW else card.learning_steps,
            stability=card.stability,
            difficulty=clamp(card.difficulty, FSRS_MIN_DIFFICULTY, FSRS_MAX_DIFFICULTY),
            due=as_utc(card.due),
            last_review=as_utc(card.last_review) if card.last_review else None,
        )

    @staticmethod
    def elapsed_days(card: FsrsCard, now: datetime) -> int:
        """Whole days since the last review (0 for never-reviewed cards)."""
        if card.state == FsrsState.NEW or card.last_review is None:
            return 0
        return max(0, (as_utc(now) - as_utc(card.last_review)).days)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def retrievability(self, card: FsrsCard, now: datetime) -> float:
        """Probability of recall at ``now``; 0 for New cards or zero stability."""
        if card.state == FsrsState.NEW or card.stability <= 0 or card.last_review is None:
            return 0.0
        r = self._scheduler.get_card_retrievability(self.to_library_card(card), as_utc(now))
        return clamp(r, 0.0, 1.0)

    def _review(
        self, scheduler: Scheduler, card: FsrsCard, now: datetime, rating: Rating
    ) -> SchedulingOutcome:
        now = as_utc(now)
        retrievability = None if card.state == FsrsState.NEW else self.retrievability(card, now)
        reviewed, _ = scheduler.review_card(self.to_library_card(card), FsrsRating(int(rating)), now)

        state = FsrsState(int(reviewed.state))
        if rating == Rating.AGAIN and state == FsrsState.REVIEW:
            # Only happens without steps; a failed card still leaves Review
            if card.state in (FsrsState.NEW, FsrsState.LEARNING):
                state = FsrsState.LEARNING
            else:
                state = FsrsState.RELEARNING

        lapses = card.lapses
        if card.state == FsrsState.REVIEW and rating == Rating.AGAIN:
            lapses += 1

        new_card = replace(
            card,
            due=reviewed.due,
            stability=reviewed.stability,
            difficulty=reviewed.difficulty,
            elapsed_days=self.elapsed_days(card, now),
            scheduled_days=max(0, (reviewed.due - now).days),
            learning_steps=reviewed.step or 0,
            reps=card.reps + 1,
            lapses=lapses,
            state=state,
            last_review=now,
        )
        return SchedulingOutcome(rating=rating, card=new_card, retrievability=retrievability)

    def next(self, card: FsrsCard, now: datetime, rating: int) -> SchedulingOutcome:
        """
        Rate ``card`` at ``now`` and return the rescheduled card.

        Raises:
            InvalidRatingError: If ``rating`` is not an integer in [1, 4].
        """
        rating = validate_rating(rating)
        outcome = self._review(self._scheduler, card, now, rating)

        logger.debug(
            f"Review processed: rating={rating.name} "
            f"state={card.state.name}->{outcome.card.state.name} "
            f"stability={card.stability:.4f}->{outcome.card.stability:.4f} "
            f"scheduled_days={outcome.card.scheduled_days} due={outcome.card.due.isoformat()}"
        )
        return outcome

    def repeat(self, card: FsrsCard, now: datetime) -> dict[Rating, SchedulingOutcome]:
        """
        Outcomes for every possible rating, without touching ``card``.
        Useful for showing the user what each button would do.
        """
        return {rating: self._review(self._exact, card, now, rating) for rating in Rating}
