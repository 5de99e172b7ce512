"""Display helpers for intervals and ratings."""

from mnemo.domain.progress.models import Rating

from .common import round_half_up


def format_interval(days: float) -> str:
    """
    Human-readable interval: ``<1m``, ``10m``, ``3h``, ``4d``, ``2mo``, ``1.5y``.
    """
    # Work in rounded units so 60 seconds is always "1m"
    minutes = round_half_up(days * 24 * 60)
    if minutes < 1:
        return "<1m"
    if minutes < 60:
        return f"{minutes}m"
    hours = round_half_up(days * 24)
    if hours < 24:
        return f"{hours}h"
    if days < 30:
        return f"{round_half_up(days)}d"
    if days < 365:
        return f"{round_half_up(days / 30)}mo"
    return f"{days / 365:.1f}y"


def rating_name(rating: int) -> str:
    try:
        return Rating(rating).name.capitalize()
    except ValueError:
        return "Unknown"
