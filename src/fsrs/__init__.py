# ABOUTME: Exposes the spaced-repetition memory scheduler entrypoints.
# ABOUTME: Groups rating derivation, difficulty/stability updates, and retrievability.

from .scheduler import (
    Rating,
    ScheduleResult,
    derive_rating,
    next_interval_days,
    retrievability,
    retrievability_at,
    schedule,
    schedule_rating,
)

__all__ = [
    "Rating",
    "ScheduleResult",
    "derive_rating",
    "next_interval_days",
    "retrievability",
    "retrievability_at",
    "schedule",
    "schedule_rating",
]
