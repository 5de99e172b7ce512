# Domain Progress Package
from .models import Algorithm, CardState, DisplayState, FsrsState, Rating, ReviewLogEntry
from .ports import ProgressRepository

__all__ = [
    "Algorithm",
    "CardState",
    "DisplayState",
    "FsrsState",
    "Rating",
    "ReviewLogEntry",
    "ProgressRepository",
]
