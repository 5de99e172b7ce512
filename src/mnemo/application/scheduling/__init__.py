# Application Scheduling Package
from .fsrs import FsrsCard, FsrsParameters, FsrsScheduler, SchedulingOutcome
from .ratings import quality_to_rating, rating_to_quality, validate_quality, validate_rating
from .selector import (
    AlgorithmSelector,
    PreviewOption,
    migrate_to_fsrs,
    reset_schedule,
)
from .sm2 import process_sm2

__all__ = [
    "AlgorithmSelector",
    "FsrsCard",
    "FsrsParameters",
    "FsrsScheduler",
    "PreviewOption",
    "SchedulingOutcome",
    "migrate_to_fsrs",
    "process_sm2",
    "quality_to_rating",
    "rating_to_quality",
    "reset_schedule",
    "validate_quality",
    "validate_rating",
]
