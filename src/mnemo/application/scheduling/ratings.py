"""Rating validation and conversion between SM-2 quality and FSRS grades."""

from mnemo.domain.constants import SM2_MAX_QUALITY
from mnemo.domain.errors import InvalidRatingError
from mnemo.domain.progress.models import Rating


def _is_int(value: object) -> bool:
    # bool is an int subclass but never a valid grade
    return isinstance(value, int) and not isinstance(value, bool)


def validate_rating(value: object) -> Rating:
    """Return ``value`` as a Rating, or raise InvalidRatingError."""
    if not _is_int(value) or not Rating.AGAIN <= value <= Rating.EASY:
        raise InvalidRatingError(value, int(Rating.AGAIN), int(Rating.EASY))
    return Rating(value)


def validate_quality(value: object) -> int:
    """Return ``value`` as an SM-2 quality (0-5), or raise InvalidRatingError."""
    if not _is_int(value) or not 0 <= value <= SM2_MAX_QUALITY:
        raise InvalidRatingError(value, 0, SM2_MAX_QUALITY, kind="quality")
    return int(value)


def quality_to_rating(quality: int) -> Rating:
    """
    Map legacy SM-2 quality (0-5) to an FSRS rating.

    0, 1, 2 -> Again; 3 -> Hard; 4 -> Good; 5 -> Easy.
    """
    quality = validate_quality(quality)
    if quality <= 2:
        return Rating.AGAIN
    if quality == 3:
        return Rating.HARD
    if quality == 4:
        return Rating.GOOD
    return Rating.EASY


_RATING_TO_QUALITY = {
    Rating.AGAIN: 1,
    Rating.HARD: 3,
    Rating.GOOD: 4,
    Rating.EASY: 5,
}


def rating_to_quality(rating: int) -> int:
    """Map an FSRS rating onto the SM-2 quality scale for cards still on SM-2."""
    return _RATING_TO_QUALITY[validate_rating(rating)]
