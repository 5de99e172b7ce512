"""
Progress Service: Application layer orchestrator.

Loads a card's state from the repository, hands it to the scheduler, and
writes the full new state back. Reviews of the same (user, flashcard) pair
are serialized with a per-pair lock; different pairs proceed independently.
"""

import asyncio
import logging
import weakref
from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta

from mnemo.application.scheduling.selector import (
    AlgorithmSelector,
    PreviewOption,
    reset_schedule,
)
from mnemo.application.utils.common import utcnow
from mnemo.domain.constants import (
    DEFAULT_DUE_LIMIT,
    DEFAULT_FORECAST_DAYS,
    DEFAULT_LEARNING_LIMIT,
    DEFAULT_NEW_LIMIT,
    SM2_PASSING_QUALITY,
)
from mnemo.domain.errors import CardNotFoundError, InvalidRatingError
from mnemo.domain.progress.models import Algorithm, CardState, DisplayState, Rating
from mnemo.domain.progress.ports import ProgressRepository

logger = logging.getLogger(__name__)


@dataclass
class UserStats:
    state_distribution: dict[str, int]
    due_count: int
    total_cards: int
    reviews_today: int
    correct_today: int
    avg_rating_today: float


@dataclass
class ForecastDay:
    date: date
    count: int


@dataclass
class StudyQueue:
    cards: list[CardState] = field(default_factory=list)
    learning_count: int = 0
    review_count: int = 0
    new_count: int = 0


def _is_correct(algorithm: Algorithm, rating: int) -> bool:
    if algorithm == Algorithm.SM2:
        return rating >= SM2_PASSING_QUALITY
    return rating >= Rating.GOOD


def _by_due(states: Iterable[CardState]) -> list[CardState]:
    return sorted(states, key=lambda s: (s.next_review_date is None, s.next_review_date))


# States the study queue lists in their own group rather than as reviews
_OWN_GROUP_STATES = (DisplayState.NEW, DisplayState.LEARNING, DisplayState.RELEARNING)


class ProgressService:
    """
    Application service for per-user flashcard progress.

    Depends on the ProgressRepository abstraction, not a concrete store.
    """

    def __init__(
        self,
        repo: ProgressRepository,
        selector: AlgorithmSelector | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            repo: The repository (port) for card states.
            selector: Scheduler dispatcher; uses default FSRS parameters if not provided.
            clock: Returns the current time; injectable for tests.
        """
        self._repo = repo
        self._selector = selector or AlgorithmSelector()
        self._clock = clock
        # A lock lives only while a call holds or waits on it
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def selector(self) -> AlgorithmSelector:
        return self._selector

    def _lock_for(self, user_id: str, flashcard_id: str) -> asyncio.Lock:
        key = (user_id, flashcard_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def get_card(self, user_id: str, flashcard_id: str) -> CardState:
        """
        Raises:
            CardNotFoundError: If the pair has no stored progress.
        """
        state = await self._repo.get(user_id, flashcard_id)
        if state is None:
            raise CardNotFoundError(user_id, flashcard_id)
        return state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def get_or_create(self, user_id: str, flashcard_id: str) -> CardState:
        """
        Get or create progress for a user-flashcard pair.
        New pairs start on FSRS in the New state, due now.
        """
        state = await self._repo.get(user_id, flashcard_id)
        if state is None:
            state = CardState.create(user_id, flashcard_id, self._clock())
            await self._repo.save(state)
            logger.debug(f"Created progress for {user_id}/{flashcard_id}")
        return state

    async def process_review(
        self,
        user_id: str,
        flashcard_id: str,
        rating: int,
        response_time_ms: int | None = None,
        is_legacy_input: bool = False,
    ) -> CardState:
        """
        Process a review for a flashcard.

        Args:
            user_id: User ID.
            flashcard_id: Flashcard ID.
            rating: FSRS rating 1-4, or SM-2 quality 0-5 when ``is_legacy_input``.
            response_time_ms: Time taken to respond.
            is_legacy_input: Whether ``rating`` is on the SM-2 quality scale.

        Raises:
            InvalidRatingError: Nothing is written when the rating is rejected.
        """
        async with self._lock_for(user_id, flashcard_id):
            # New pairs are only stored once a valid review has been applied
            state = await self._repo.get(user_id, flashcard_id) or CardState.create(
                user_id, flashcard_id, self._clock()
            )
            try:
                updated = self._selector.process_review(
                    state,
                    rating,
                    response_time_ms=response_time_ms,
                    is_legacy_input=is_legacy_input,
                    now=self._clock(),
                )
            except InvalidRatingError as e:
                logger.warning(f"Rejected review for {user_id}/{flashcard_id}: {e}")
                raise
            await self._repo.save(updated)
            return updated

    async def migrate_to_fsrs(self, user_id: str, flashcard_id: str) -> CardState:
        async with self._lock_for(user_id, flashcard_id):
            state = await self.get_card(user_id, flashcard_id)
            migrated = self._selector.migrate(state)
            if migrated is not state:
                await self._repo.save(migrated)
                logger.info(
                    f"Migrated {user_id}/{flashcard_id} to FSRS "
                    f"(difficulty={migrated.difficulty}, stability={migrated.stability})"
                )
            return migrated

    async def _set_suspended(self, user_id: str, flashcard_id: str, suspended: bool) -> CardState:
        async with self._lock_for(user_id, flashcard_id):
            state = await self.get_card(user_id, flashcard_id)
            updated = replace(state, is_suspended=suspended)
            await self._repo.save(updated)
            logger.info(f"{'Suspended' if suspended else 'Unsuspended'} {user_id}/{flashcard_id}")
            return updated

    async def suspend_card(self, user_id: str, flashcard_id: str) -> CardState:
        """Suspend a card (stop showing it)."""
        return await self._set_suspended(user_id, flashcard_id, True)

    async def unsuspend_card(self, user_id: str, flashcard_id: str) -> CardState:
        return await self._set_suspended(user_id, flashcard_id, False)

    async def reset_card(self, user_id: str, flashcard_id: str) -> CardState:
        """Reset scheduling for a card; its review history is kept."""
        async with self._lock_for(user_id, flashcard_id):
            state = await self.get_card(user_id, flashcard_id)
            updated = reset_schedule(state, self._clock())
            await self._repo.save(updated)
            logger.info(f"Reset {user_id}/{flashcard_id}")
            return updated

    async def initialize_for_flashcards(self, user_id: str, flashcard_ids: list[str]) -> int:
        """
        Initialize progress for multiple flashcards.
        Returns the number of states created; existing states are untouched.
        """
        created = 0
        for flashcard_id in dict.fromkeys(flashcard_ids):
            if await self._repo.get(user_id, flashcard_id) is None:
                await self.get_or_create(user_id, flashcard_id)
                created += 1
        return created

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    async def get_scheduling_preview(
        self, user_id: str, flashcard_id: str
    ) -> dict[Rating, PreviewOption]:
        """What each rating would do, without changing the stored state."""
        state = await self.get_card(user_id, flashcard_id)
        return self._selector.preview(state, self._clock())

    async def get_retrievability(self, user_id: str, flashcard_id: str) -> float:
        state = await self.get_card(user_id, flashcard_id)
        return self._selector.retrievability(state, self._clock())

    async def get_user_progress(self, user_id: str) -> list[CardState]:
        return await self._repo.list_for_user(user_id)

    async def get_due_cards(
        self, user_id: str, limit: int | None = DEFAULT_DUE_LIMIT
    ) -> list[CardState]:
        """Cards due for review, earliest first. ``limit=None`` returns all of them."""
        now = self._clock()
        states = await self._repo.list_for_user(user_id)
        return _by_due(s for s in states if s.is_due(now))[:limit]

    async def get_new_cards(self, user_id: str, limit: int = DEFAULT_NEW_LIMIT) -> list[CardState]:
        """Cards never reviewed (or reset)."""
        states = await self._repo.list_for_user(user_id)
        return [s for s in states if s.state == DisplayState.NEW and not s.is_suspended][:limit]

    async def get_learning_cards(
        self, user_id: str, limit: int = DEFAULT_LEARNING_LIMIT
    ) -> list[CardState]:
        states = await self._repo.list_for_user(user_id)
        learning = (
            s
            for s in states
            if s.state in (DisplayState.LEARNING, DisplayState.RELEARNING) and not s.is_suspended
        )
        return _by_due(learning)[:limit]

    async def get_study_queue(
        self,
        user_id: str,
        new_limit: int = DEFAULT_NEW_LIMIT,
        review_limit: int = DEFAULT_DUE_LIMIT,
        learning_first: bool = True,
    ) -> StudyQueue:
        """
        Mix of learning, due and new cards for a study session.

        Each card belongs to exactly one group: learning/relearning cards to
        learning, New cards to new, and every other due card to review. The
        counts therefore always add up to ``len(cards)``.
        """
        learning = await self.get_learning_cards(user_id)
        new = await self.get_new_cards(user_id, new_limit)
        due = [
            s
            for s in await self.get_due_cards(user_id, limit=None)
            if s.state not in _OWN_GROUP_STATES
        ][:review_limit]

        ordered = [*learning, *due, *new] if learning_first else [*due, *learning, *new]
        return StudyQueue(
            cards=ordered,
            learning_count=len(learning),
            review_count=len(due),
            new_count=len(new),
        )

    async def get_user_stats(self, user_id: str) -> UserStats:
        """
        Get a user's study statistics: state distribution, due count and
        today's reviews (UTC day).
        """
        now = self._clock()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        states = await self._repo.list_for_user(user_id)

        today = [
            entry
            for s in states
            for entry in s.review_history
            if entry.timestamp >= start_of_day
        ]
        correct_today = sum(1 for e in today if _is_correct(e.algorithm, e.rating))

        return UserStats(
            state_distribution=dict(Counter(s.state.value for s in states)),
            due_count=sum(1 for s in states if s.is_due(now)),
            total_cards=len(states),
            reviews_today=len(today),
            correct_today=correct_today,
            avg_rating_today=sum(e.rating for e in today) / len(today) if today else 0.0,
        )

    async def get_daily_forecast(
        self, user_id: str, days: int = DEFAULT_FORECAST_DAYS
    ) -> list[ForecastDay]:
        """
        How many cards fall due on each of the next ``days`` calendar days.
        Day 0 is today (cards already overdue are not counted).
        """
        now = self._clock()
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        states = [s for s in await self._repo.list_for_user(user_id) if not s.is_suspended]

        forecast = []
        for offset in range(days):
            day_start = start + timedelta(days=offset)
            day_end = day_start + timedelta(days=1)
            count = sum(
                1
                for s in states
                if s.next_review_date is not None and day_start <= s.next_review_date < day_end
            )
            forecast.append(ForecastDay(date=day_start.date(), count=count))
        return forecast
