"""
Legacy SM-2 scheduler.

Stateless: maps (state, quality, response time) to a new state using the
fixed SuperMemo-2 formulas. Quality scale:

    0 - Complete blackout
    1 - Incorrect, remembered on seeing answer
    2 - Incorrect, but answer seemed easy to recall
    3 - Correct with serious difficulty
    4 - Correct with some hesitation
    5 - Perfect response
"""

from dataclasses import replace
from datetime import datetime, timedelta

from mnemo.application.utils.common import round_half_up, utcnow
from mnemo.domain.constants import (
    SM2_MASTERED_INTERVAL,
    SM2_MIN_EASINESS,
    SM2_PASSING_QUALITY,
)
from mnemo.domain.progress.models import CardState, DisplayState

from .ledger import record_review
from .ratings import validate_quality


def next_easiness(easiness: float, quality: int) -> float:
    """EF' = max(1.3, EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)))"""
    miss = 5 - quality
    return max(SM2_MIN_EASINESS, easiness + (0.1 - miss * (0.08 + miss * 0.02)))


def next_interval(interval: int, repetitions: int, easiness: float) -> int:
    """Interval after a successful review, before ``repetitions`` is incremented."""
    if repetitions == 0:
        return 1
    if repetitions == 1:
        return 6
    return round_half_up(interval * easiness)


def process_sm2(
    state: CardState,
    quality: int,
    response_time_ms: int | None = None,
    now: datetime | None = None,
) -> CardState:
    """
    Apply one SM-2 review.

    Args:
        state: Current card state (algorithm is expected to be SM-2).
        quality: Quality rating 0-5.
        response_time_ms: Time taken to answer.
        now: Review timestamp, defaults to the current UTC time.

    Returns:
        A new CardState with scheduling fields, ledger entry and counters updated.

    Raises:
        InvalidRatingError: If ``quality`` is not an integer in [0, 5].
    """
    quality = validate_quality(quality)
    now = now or utcnow()

    lapses = state.lapses
    if quality < SM2_PASSING_QUALITY:
        repetitions = 0
        interval = 1
        if state.state in (DisplayState.REVIEW, DisplayState.MASTERED):
            lapses += 1
            display = DisplayState.RELEARNING
        else:
            display = DisplayState.LEARNING
    else:
        interval = next_interval(state.interval, state.repetitions, state.easiness_factor)
        repetitions = state.repetitions + 1
        display = DisplayState.MASTERED if interval >= SM2_MASTERED_INTERVAL else DisplayState.REVIEW

    updated = replace(
        state,
        repetitions=repetitions,
        interval=interval,
        easiness_factor=next_easiness(state.easiness_factor, quality),
        lapses=lapses,
        state=display,
        next_review_date=now + timedelta(days=interval),
    )
    return record_review(
        state,
        updated,
        now=now,
        rating=quality,
        correct=quality >= SM2_PASSING_QUALITY,
        response_time_ms=response_time_ms,
    )
