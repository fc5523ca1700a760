# ABOUTME: Schedules the next review of an item from the outcome of its latest encounter.
# ABOUTME: Tracks FSRS-style memory difficulty and stability with asymmetric lapse/success updates.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Optional

from src.common.config import FsrsConfig
from src.common.schemas import clamp, to_utc


class Rating(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


@dataclass(frozen=True)
class ScheduleResult:
    difficulty: float
    stability: float
    next_review: datetime
    rating: Rating
    interval_days: float


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_rating(correct: bool, response_time_ms: Optional[float], config: Optional[FsrsConfig] = None) -> Rating:
    """
    Map an outcome onto a rating without asking the learner.

    Incorrect -> Again; correct and slower than the slow threshold -> Hard;
    faster than the fast threshold -> Easy; otherwise Good. A missing response
    time counts as moderate.
    """

    config = config or FsrsConfig()
    if not correct:
        return Rating.AGAIN
    if response_time_ms is None or (isinstance(response_time_ms, float) and math.isnan(response_time_ms)):
        return Rating.GOOD
    elapsed = max(0.0, float(response_time_ms))
    if elapsed > config.slow_response_ms:
        return Rating.HARD
    if elapsed < config.fast_response_ms:
        return Rating.EASY
    return Rating.GOOD


def safe_stability(stability: Optional[float], config: Optional[FsrsConfig] = None) -> float:
    config = config or FsrsConfig()
    if stability is None or math.isnan(stability) or stability <= 0:
        return config.stability_floor
    return max(config.stability_floor, float(stability))


def safe_difficulty(difficulty: Optional[float], config: Optional[FsrsConfig] = None) -> float:
    config = config or FsrsConfig()
    if difficulty is None or math.isnan(difficulty):
        return (config.min_difficulty + config.max_difficulty) / 2.0
    return clamp(float(difficulty), config.min_difficulty, config.max_difficulty)


def next_difficulty(difficulty: float, rating: Rating, config: Optional[FsrsConfig] = None) -> float:
    config = config or FsrsConfig()
    d = safe_difficulty(difficulty, config)
    if rating == Rating.AGAIN:
        d += config.again_difficulty_delta
    elif rating == Rating.EASY:
        d += config.easy_difficulty_delta
    return clamp(d, config.min_difficulty, config.max_difficulty)


def next_stability(stability: float, rating: Rating, config: Optional[FsrsConfig] = None) -> float:
    """
    Lapse: S * lapse_factor, never below the floor.
    Success: S * growth(rating) + constant, with Easy > Good > Hard growth.
    """

    config = config or FsrsConfig()
    s = safe_stability(stability, config)
    if rating == Rating.AGAIN:
        return max(config.stability_floor, s * config.lapse_factor)
    growth = {
        Rating.HARD: config.hard_growth,
        Rating.GOOD: config.good_growth,
        Rating.EASY: config.easy_growth,
    }[Rating(rating)]
    return s * growth + config.growth_constant


def next_interval_days(stability: float, difficulty: float, config: Optional[FsrsConfig] = None) -> float:
    """days = S * (1 + (5 - D) / 10), floored at the minimum interval."""

    config = config or FsrsConfig()
    s = safe_stability(stability, config)
    d = safe_difficulty(difficulty, config)
    days = s * (1.0 + (5.0 - d) / 10.0)
    return min(config.max_interval_days, max(config.min_interval_days, days))


def schedule_rating(
    rating: Rating,
    current_difficulty: float,
    current_stability: float,
    now: Optional[datetime] = None,
    config: Optional[FsrsConfig] = None,
) -> ScheduleResult:
    """Apply an explicit rating; schedule() derives the rating and delegates here."""

    config = config or FsrsConfig()
    now = to_utc(now) or _utcnow()
    rating = Rating(rating)
    difficulty = next_difficulty(current_difficulty, rating, config)
    stability = next_stability(current_stability, rating, config)
    interval = next_interval_days(stability, difficulty, config)
    return ScheduleResult(
        difficulty=difficulty,
        stability=stability,
        next_review=now + timedelta(days=interval),
        rating=rating,
        interval_days=interval,
    )


def schedule(
    correct: bool,
    response_time_ms: Optional[float],
    current_difficulty: float,
    current_stability: float,
    now: Optional[datetime] = None,
    config: Optional[FsrsConfig] = None,
) -> ScheduleResult:
    """Update memory difficulty/stability after an encounter and compute the next due date."""

    rating = derive_rating(correct, response_time_ms, config)
    return schedule_rating(rating, current_difficulty, current_stability, now=now, config=config)


def retrievability(stability: float, elapsed_days: float) -> float:
    """Recall probability R(t) = exp(-t / S); diagnostics only."""

    if elapsed_days is None or elapsed_days <= 0:
        return 1.0
    return math.exp(-elapsed_days / safe_stability(stability))


def retrievability_at(stability: float, last_reviewed_at: Optional[datetime], now: Optional[datetime] = None) -> float:
    """Retrievability for a stored review timestamp; never-reviewed items report 0."""

    if last_reviewed_at is None:
        return 0.0
    now = to_utc(now) or _utcnow()
    elapsed_days = (now - to_utc(last_reviewed_at)).total_seconds() / 86400.0
    return retrievability(stability, elapsed_days)
