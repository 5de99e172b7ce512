# Application Stats Package
from .metrics_calculator import EnrichedStats, MetricsCalculator

__all__ = ["MetricsCalculator", "EnrichedStats"]
