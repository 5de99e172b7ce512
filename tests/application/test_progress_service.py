import asyncio
import logging
from dataclasses import replace
from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from mnemo.application.progress_service import ProgressService
from mnemo.domain.errors import CardNotFoundError, InvalidRatingError
from mnemo.domain.progress.models import (
    Algorithm,
    CardState,
    DisplayState,
    FsrsState,
    Rating,
)


# ---------- Lifecycle ----------


@pytest.mark.asyncio
async def test_get_or_create_defaults(service, repo, clock):
    state = await service.get_or_create("u1", "c1")

    assert state.algorithm == Algorithm.FSRS
    assert state.fsrs_state == FsrsState.NEW
    assert state.next_review_date == clock.now
    assert await repo.get("u1", "c1") == state


@pytest.mark.asyncio
async def test_get_or_create_returns_existing(service):
    first = await service.get_or_create("u1", "c1")
    await service.process_review("u1", "c1", Rating.GOOD)
    second = await service.get_or_create("u1", "c1")

    assert second != first
    assert second.total_reviews == 1


@pytest.mark.asyncio
async def test_process_review_persists(service, repo, clock):
    result = await service.process_review("u1", "c1", Rating.GOOD, response_time_ms=1500)

    stored = await repo.get("u1", "c1")
    assert stored == result
    assert stored.fsrs_state == FsrsState.LEARNING
    assert stored.average_response_time_ms == 1500
    assert stored.next_review_date == clock.now + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_process_review_invalid_rating_writes_nothing(service, repo, caplog):
    await service.get_or_create("u1", "c1")
    before = await repo.get("u1", "c1")

    with caplog.at_level(logging.WARNING):
        with pytest.raises(InvalidRatingError):
            await service.process_review("u1", "c1", 7)

    assert await repo.get("u1", "c1") == before
    assert "Rejected review" in caplog.text


@pytest.mark.asyncio
async def test_process_review_legacy_quality(service):
    result = await service.process_review("u1", "c1", 4, is_legacy_input=True)
    assert result.last_rating == Rating.GOOD


@pytest.mark.asyncio
async def test_concurrent_reviews_same_card_are_serialized(service, repo):
    await asyncio.gather(*(service.process_review("u1", "c1", Rating.GOOD) for _ in range(5)))

    stored = await repo.get("u1", "c1")
    assert stored.total_reviews == 5
    assert len(stored.review_history) == 5


@pytest.mark.asyncio
async def test_card_locks_are_released_after_use(service):
    for i in range(10):
        await service.process_review("u1", f"c{i}", Rating.GOOD)
    await service.initialize_for_flashcards("u1", ["x"])
    await service.suspend_card("u1", "x")

    assert len(service._locks) == 0


@pytest.mark.asyncio
async def test_card_lock_is_shared_while_referenced(service):
    lock = service._lock_for("u1", "c1")

    assert service._lock_for("u1", "c1") is lock
    assert len(service._locks) == 1
    del lock
    assert len(service._locks) == 0


@pytest.mark.asyncio
async def test_concurrent_reviews_on_slow_store_lose_nothing(selector, clock):
    states: dict = {}

    async def slow_get(user_id, flashcard_id):
        await asyncio.sleep(0)
        return states.get((user_id, flashcard_id))

    async def slow_save(state):
        await asyncio.sleep(0)
        states[state.key] = state

    repo = AsyncMock()
    repo.get.side_effect = slow_get
    repo.save.side_effect = slow_save
    service = ProgressService(repo, selector, clock=clock)

    await asyncio.gather(
        *(service.process_review("u1", "c1", Rating.GOOD) for _ in range(3)),
        service.process_review("u1", "c2", Rating.EASY),
    )

    assert states[("u1", "c1")].total_reviews == 3
    assert states[("u1", "c2")].total_reviews == 1


# ---------- Card management ----------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method",
    [
        "suspend_card",
        "unsuspend_card",
        "reset_card",
        "migrate_to_fsrs",
        "get_scheduling_preview",
        "get_retrievability",
        "get_card",
    ],
)
async def test_missing_card_raises(service, method):
    with pytest.raises(CardNotFoundError):
        await getattr(service, method)("u1", "missing")


@pytest.mark.asyncio
async def test_suspend_and_unsuspend(service):
    await service.get_or_create("u1", "c1")

    suspended = await service.suspend_card("u1", "c1")
    assert suspended.is_suspended
    assert await service.get_due_cards("u1") == []

    unsuspended = await service.unsuspend_card("u1", "c1")
    assert not unsuspended.is_suspended
    assert [s.flashcard_id for s in await service.get_due_cards("u1")] == ["c1"]


@pytest.mark.asyncio
async def test_reset_card(service, clock):
    await service.process_review("u1", "c1", Rating.EASY)
    clock.advance(days=2)

    reset = await service.reset_card("u1", "c1")

    assert reset.state == DisplayState.NEW
    assert reset.fsrs_state == FsrsState.NEW
    assert reset.stability == 0
    assert reset.next_review_date == clock.now
    assert reset.total_reviews == len(reset.review_history) == 1


@pytest.mark.asyncio
async def test_migrate_to_fsrs(service, repo, now):
    legacy = replace(
        CardState.create("u1", "c1", now),
        algorithm=Algorithm.SM2,
        easiness_factor=1.3,
        interval=10,
        state=DisplayState.REVIEW,
    )
    await repo.save(legacy)

    migrated = await service.migrate_to_fsrs("u1", "c1")

    assert migrated.algorithm == Algorithm.FSRS
    assert migrated.difficulty == 10
    assert (await repo.get("u1", "c1")) == migrated


@pytest.mark.asyncio
async def test_migrate_already_fsrs_does_not_write(service, now):
    repo = AsyncMock()
    repo.get.return_value = CardState.create("u1", "c1", now)
    svc = ProgressService(repo, service.selector)

    await svc.migrate_to_fsrs("u1", "c1")

    repo.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_initialize_for_flashcards(service):
    await service.process_review("u1", "c1", Rating.GOOD)

    created = await service.initialize_for_flashcards("u1", ["c1", "c2", "c3", "c2"])

    assert created == 2
    progress = {s.flashcard_id: s for s in await service.get_user_progress("u1")}
    assert set(progress) == {"c1", "c2", "c3"}
    assert progress["c1"].total_reviews == 1


# ---------- Queries ----------


@pytest.mark.asyncio
async def test_preview_and_retrievability(service, clock):
    await service.process_review("u1", "c1", Rating.EASY)

    preview = await service.get_scheduling_preview("u1", "c1")
    assert set(preview) == set(Rating)

    clock.advance(days=16)
    r = await service.get_retrievability("u1", "c1")
    assert 0.85 < r < 0.95


@pytest.mark.asyncio
async def test_due_cards_sorted_and_limited(service, repo, now):
    for i, offset in enumerate([3, 1, 2, -1]):
        state = replace(
            CardState.create("u1", f"c{i}", now), next_review_date=now - timedelta(days=offset)
        )
        await repo.save(state)
    await repo.save(CardState.create("u2", "other", now))

    due = await service.get_due_cards("u1", limit=2)

    assert [s.flashcard_id for s in due] == ["c0", "c2"]


@pytest.mark.asyncio
async def test_new_and_learning_cards(service):
    await service.initialize_for_flashcards("u1", ["n1", "n2"])
    await service.process_review("u1", "l1", Rating.GOOD)

    new = await service.get_new_cards("u1")
    learning = await service.get_learning_cards("u1")

    assert {s.flashcard_id for s in new} == {"n1", "n2"}
    assert [s.flashcard_id for s in learning] == ["l1"]


@pytest.mark.asyncio
async def test_study_queue_has_no_duplicates(service, clock):
    await service.initialize_for_flashcards("u1", ["n1", "n2"])
    await service.process_review("u1", "l1", Rating.GOOD)
    clock.advance(minutes=15)

    queue = await service.get_study_queue("u1")

    ids = [s.flashcard_id for s in queue.cards]
    assert ids[0] == "l1"
    assert len(ids) == len(set(ids)) == 3
    assert queue.learning_count == 1
    assert queue.new_count == 2


@pytest.mark.asyncio
async def test_study_queue_review_first(service, repo, clock, now):
    await repo.save(
        replace(
            CardState.create("u1", "r1", now - timedelta(days=1)),
            state=DisplayState.REVIEW,
            fsrs_state=FsrsState.REVIEW,
        )
    )
    await service.process_review("u1", "l1", Rating.GOOD)

    queue = await service.get_study_queue("u1", learning_first=False)

    assert queue.cards[0].flashcard_id == "r1"


@pytest.mark.asyncio
async def test_study_queue_counts_each_card_once(service, repo, clock, now):
    # l1 is in learning and already due; n1 is new and due since creation
    await service.initialize_for_flashcards("u1", ["n1"])
    await service.process_review("u1", "l1", Rating.GOOD)
    await repo.save(
        replace(
            CardState.create("u1", "r1", now - timedelta(days=1)),
            state=DisplayState.REVIEW,
            fsrs_state=FsrsState.REVIEW,
        )
    )
    clock.advance(hours=1)

    queue = await service.get_study_queue("u1")

    assert [s.flashcard_id for s in queue.cards] == ["l1", "r1", "n1"]
    assert (queue.learning_count, queue.review_count, queue.new_count) == (1, 1, 1)
    assert queue.learning_count + queue.review_count + queue.new_count == len(queue.cards)


@pytest.mark.asyncio
async def test_study_queue_new_limit_bounds_due_new_cards(service, clock):
    await service.initialize_for_flashcards("u1", ["a", "b", "c"])
    clock.advance(minutes=1)

    queue = await service.get_study_queue("u1", new_limit=2)

    assert len(queue.cards) == 2
    assert (queue.learning_count, queue.review_count, queue.new_count) == (0, 0, 2)


@pytest.mark.asyncio
async def test_user_stats(service, clock):
    await service.process_review("u1", "c1", Rating.GOOD)
    await service.process_review("u1", "c2", Rating.AGAIN)
    await service.process_review("u1", "c3", Rating.EASY)
    await service.initialize_for_flashcards("u1", ["c4"])

    stats = await service.get_user_stats("u1")

    assert stats.total_cards == 4
    assert stats.reviews_today == 3
    assert stats.correct_today == 2
    assert stats.avg_rating_today == pytest.approx((3 + 1 + 4) / 3)
    assert stats.state_distribution == {"learning": 2, "review": 1, "new": 1}
    assert stats.due_count == 1


@pytest.mark.asyncio
async def test_user_stats_ignores_yesterday(service, clock):
    await service.process_review("u1", "c1", Rating.GOOD)
    clock.advance(days=1)

    stats = await service.get_user_stats("u1")

    assert stats.reviews_today == 0
    assert stats.avg_rating_today == 0.0


@pytest.mark.asyncio
async def test_daily_forecast(service, clock):
    await service.process_review("u1", "c1", Rating.EASY)  # due in 16 days
    await service.process_review("u1", "c2", Rating.GOOD)  # due in 10 minutes
    await service.initialize_for_flashcards("u1", ["c3"])  # due now

    forecast = await service.get_daily_forecast("u1", days=3)

    assert [day.date for day in forecast] == [
        date(2024, 3, 1),
        date(2024, 3, 2),
        date(2024, 3, 3),
    ]
    assert [day.count for day in forecast] == [2, 0, 0]
