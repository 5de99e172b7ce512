"""Centralized constants for the mnemo scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ----------
SM2_INITIAL_EASINESS = 2.5
SM2_MIN_EASINESS = 1.3
SM2_PASSING_QUALITY = 3
SM2_MASTERED_INTERVAL = 21  # days
SM2_MAX_QUALITY = 5

# ---------- FSRS ----------
FSRS_DEFAULT_RETENTION = 0.9
FSRS_DEFAULT_MAX_INTERVAL = 365  # days
FSRS_MIN_DIFFICULTY = 1.0
FSRS_MAX_DIFFICULTY = 10.0
FSRS_DEFAULT_LEARNING_STEPS_MIN = (1.0, 10.0)
FSRS_DEFAULT_RELEARNING_STEPS_MIN = (10.0,)

# ---------- Display state ----------
MASTERED_MIN_STABILITY = 30.0  # days, FSRS only
MASTERED_MIN_SCHEDULED_DAYS = 21

# ---------- Migration ----------
MIGRATION_EASINESS_SPAN = 1.2  # 2.5 - 1.3

# ---------- Queries ----------
DEFAULT_DUE_LIMIT = 20
DEFAULT_NEW_LIMIT = 10
DEFAULT_LEARNING_LIMIT = 10
DEFAULT_FORECAST_DAYS = 7

# ---------- Metrics ----------
VOLATILITY_WINDOW = 10

SECONDS_PER_DAY = 86400.0
