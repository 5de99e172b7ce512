"""
Review history ledger.

Every processed review appends exactly one complete ReviewLogEntry and
updates the running counters that summarize the ledger. Entries are built
after the new interval is known, so no entry is ever edited afterwards.
"""

from dataclasses import replace
from datetime import datetime

from mnemo.domain.progress.models import CardState, ReviewLogEntry


def append_entry(
    history: tuple[ReviewLogEntry, ...], entry: ReviewLogEntry
) -> tuple[ReviewLogEntry, ...]:
    return (*history, entry)


def record_review(
    previous: CardState,
    updated: CardState,
    *,
    now: datetime,
    rating: int,
    correct: bool,
    response_time_ms: int | None = None,
) -> CardState:
    """
    Attach the ledger entry and statistics for one review.

    Args:
        previous: State before the review; supplies ``interval_before`` and the
            prior counters.
        updated: State carrying the scheduler's new fields; supplies
            ``interval_after``.
        now: Review timestamp.
        rating: Raw value the scheduler consumed (quality for SM-2, grade for FSRS).
        correct: Whether the review counts toward ``correct_count``.
        response_time_ms: Optional answer latency.

    Returns:
        ``updated`` with history, totals and averages filled in.
    """
    entry = ReviewLogEntry(
        timestamp=now,
        rating=rating,
        response_time_ms=response_time_ms,
        interval_before=previous.interval,
        interval_after=updated.interval,
        algorithm=previous.algorithm,
    )

    total = previous.total_reviews + 1
    average = previous.average_response_time_ms
    if response_time_ms is not None:
        average = (average * (total - 1) + response_time_ms) / total

    return replace(
        updated,
        review_history=append_entry(previous.review_history, entry),
        total_reviews=total,
        correct_count=previous.correct_count + (1 if correct else 0),
        incorrect_count=previous.incorrect_count + (0 if correct else 1),
        average_response_time_ms=average,
        last_review_date=now,
        last_rating=rating,
    )
