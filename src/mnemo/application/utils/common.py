import math
from datetime import datetime, timezone


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (``round`` rounds to even)."""
    return math.floor(value + 0.5)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Same instant with ``timezone.utc``; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
