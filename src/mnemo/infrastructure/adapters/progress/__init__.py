# Infrastructure Progress Adapters Package
from .json_store import JsonProgressRepository
from .memory import InMemoryProgressRepository

__all__ = ["InMemoryProgressRepository", "JsonProgressRepository"]
