from dataclasses import replace
from datetime import timedelta

import pytest

from mnemo.application.scheduling.ledger import append_entry, record_review
from mnemo.application.scheduling.ratings import (
    quality_to_rating,
    rating_to_quality,
    validate_quality,
    validate_rating,
)
from mnemo.domain.errors import InvalidRatingError
from mnemo.domain.progress.models import Algorithm, CardState, Rating, ReviewLogEntry


@pytest.fixture
def card(now):
    return CardState.create("u1", "c1", now)


# ---------- Ledger ----------


def test_append_entry_returns_new_tuple(now):
    entry = ReviewLogEntry(now, 3, None, 0, 1, Algorithm.FSRS)
    history = ()
    extended = append_entry(history, entry)

    assert extended == (entry,)
    assert history == ()


def test_record_review_builds_complete_entry(card, now):
    updated = replace(card, interval=4)
    result = record_review(card, updated, now=now, rating=3, correct=True, response_time_ms=800)

    (entry,) = result.review_history
    assert entry == ReviewLogEntry(
        timestamp=now,
        rating=3,
        response_time_ms=800,
        interval_before=0,
        interval_after=4,
        algorithm=Algorithm.FSRS,
    )
    assert result.total_reviews == 1
    assert result.correct_count == 1
    assert result.incorrect_count == 0
    assert result.average_response_time_ms == 800


def test_running_average_response_time(card, now):
    state = card
    for ms in (1000, 2000, 3000):
        state = record_review(state, state, now=now, rating=3, correct=True, response_time_ms=ms)
    assert state.average_response_time_ms == pytest.approx(2000)


def test_missing_response_time_keeps_average(card, now):
    state = record_review(card, card, now=now, rating=3, correct=True, response_time_ms=1000)
    state = record_review(state, state, now=now, rating=1, correct=False)

    assert state.average_response_time_ms == 1000
    assert state.review_history[-1].response_time_ms is None


def test_counters_match_history(selector, card, now):
    state = card
    t = now
    for rating in (Rating.GOOD, Rating.AGAIN, Rating.GOOD, Rating.EASY, Rating.HARD):
        state = selector.process_review(state, rating, now=t)
        t += timedelta(days=1)

    assert state.total_reviews == len(state.review_history) == 5
    assert state.correct_count + state.incorrect_count == state.total_reviews
    assert state.incorrect_count == 2  # Again and Hard
    timestamps = [e.timestamp for e in state.review_history]
    assert timestamps == sorted(timestamps)


# ---------- Ratings ----------


@pytest.mark.parametrize(
    "quality,rating",
    [(0, Rating.AGAIN), (1, Rating.AGAIN), (2, Rating.AGAIN), (3, Rating.HARD), (4, Rating.GOOD), (5, Rating.EASY)],
)
def test_quality_to_rating(quality, rating):
    assert quality_to_rating(quality) == rating


def test_rating_to_quality():
    assert [rating_to_quality(r) for r in Rating] == [1, 3, 4, 5]


def test_validate_rating_returns_enum():
    assert validate_rating(3) is Rating.GOOD


@pytest.mark.parametrize("value", [0, 5, 3.0, "3", None, False])
def test_validate_rating_rejects(value):
    with pytest.raises(InvalidRatingError) as exc:
        validate_rating(value)
    assert exc.value.low == 1
    assert exc.value.high == 4


def test_invalid_rating_is_value_error():
    with pytest.raises(ValueError):
        validate_quality(-1)
