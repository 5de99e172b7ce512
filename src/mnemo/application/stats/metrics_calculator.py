"""
Metrics calculator for deriving insights from a card's state and ledger.

This is a pure computation module with no I/O.
"""

from dataclasses import dataclass
from datetime import datetime

from mnemo.application.scheduling.selector import AlgorithmSelector
from mnemo.application.utils.common import utcnow
from mnemo.domain.constants import SECONDS_PER_DAY, VOLATILITY_WINDOW
from mnemo.domain.progress.models import Algorithm, CardState, DisplayState, ReviewLogEntry


@dataclass
class EnrichedStats:
    """
    Card state enriched with computed metrics.
    """

    # Original state
    user_id: str
    flashcard_id: str
    algorithm: Algorithm
    state: DisplayState
    lapses: int
    total_reviews: int
    interval: int
    next_review_date: datetime | None

    # FSRS core
    stability: float | None
    difficulty: float | None

    # Computed metrics
    current_retrievability: float
    lapse_rate: float | None  # lapses / reviews
    accuracy: float | None  # correct / reviews
    volatility: float | None  # Interval variance over recent reviews
    days_overdue: int | None  # Negative if not yet due


class MetricsCalculator:
    """
    Computes derived metrics from CardState objects.

    Stateless and side-effect free.
    """

    def __init__(self, selector: AlgorithmSelector | None = None):
        self._selector = selector or AlgorithmSelector()

    def enrich(self, card: CardState, now: datetime | None = None) -> EnrichedStats:
        """
        Enrich a card's state with computed metrics.
        """
        now = now or utcnow()
        is_fsrs = card.algorithm == Algorithm.FSRS

        return EnrichedStats(
            user_id=card.user_id,
            flashcard_id=card.flashcard_id,
            algorithm=card.algorithm,
            state=card.state,
            lapses=card.lapses,
            total_reviews=card.total_reviews,
            interval=card.interval,
            next_review_date=card.next_review_date,
            stability=card.stability if is_fsrs else None,
            difficulty=card.difficulty if is_fsrs else None,
            current_retrievability=self._selector.retrievability(card, now),
            lapse_rate=self._ratio(card.lapses, card.total_reviews),
            accuracy=self._ratio(card.correct_count, card.total_reviews),
            volatility=self._compute_volatility(card.review_history),
            days_overdue=self._compute_days_overdue(card, now),
        )

    @staticmethod
    def _ratio(part: int, whole: int) -> float | None:
        if whole == 0:
            return None
        return part / whole

    def _compute_volatility(self, reviews: tuple[ReviewLogEntry, ...]) -> float | None:
        """
        Compute variance in assigned intervals over recent reviews.

        High volatility indicates unstable learning.
        """
        if len(reviews) < 3:
            return None

        recent = reviews[-VOLATILITY_WINDOW:]
        intervals = [r.interval_after for r in recent if r.interval_after > 0]

        if len(intervals) < 2:
            return None

        mean = sum(intervals) / len(intervals)
        return sum((i - mean) ** 2 for i in intervals) / len(intervals)

    def _compute_days_overdue(self, card: CardState, now: datetime) -> int | None:
        """
        Whole days past the due date (negative if not yet due).
        """
        if card.next_review_date is None or card.total_reviews == 0:
            return None
        return int((now - card.next_review_date).total_seconds() / SECONDS_PER_DAY)
