"""
Ports (interfaces) for progress persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .models import CardState


class ProgressRepository(ABC):
    """
    Port for loading and storing card states.

    Implementations:
        - InMemoryProgressRepository: Process-local dict, used in tests and the
          ``memory`` backend.
        - JsonProgressRepository: A single JSON document on disk.
    """

    @abstractmethod
    async def get(self, user_id: str, flashcard_id: str) -> CardState | None:
        """
        Fetch the state for one (user, flashcard) pair.

        Returns:
            The stored CardState, or None if the pair has never been scheduled.
        """
        pass

    @abstractmethod
    async def save(self, state: CardState) -> None:
        """
        Store the full state, replacing any previous value for ``state.key``.
        """
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[CardState]:
        """
        Fetch every state belonging to a user, in no particular order.
        """
        pass
