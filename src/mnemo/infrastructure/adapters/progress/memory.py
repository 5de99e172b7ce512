"""
In-memory Progress Repository.

Process-local storage; contents are lost on exit.
"""

from mnemo.domain.progress.models import CardState
from mnemo.domain.progress.ports import ProgressRepository


class InMemoryProgressRepository(ProgressRepository):
    def __init__(self, states: list[CardState] | None = None):
        self._states: dict[tuple[str, str], CardState] = {s.key: s for s in states or []}

    async def get(self, user_id: str, flashcard_id: str) -> CardState | None:
        return self._states.get((user_id, flashcard_id))

    async def save(self, state: CardState) -> None:
        self._states[state.key] = state

    async def list_for_user(self, user_id: str) -> list[CardState]:
        return [s for s in self._states.values() if s.user_id == user_id]
