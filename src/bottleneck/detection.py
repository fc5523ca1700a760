# ABOUTME: Detects per-component error bottlenecks from a learner's response history.
# ABOUTME: Computes trailing-window error rates and recent trends with pandas aggregations.

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from src.common.config import BottleneckConfig
from src.common.schemas import CASCADE_ORDER, BottleneckResult, ComponentCode, ResponseRecord

HISTORY_COLUMNS = [
    "item_id",
    "correct",
    "timestamp",
    "session_id",
    "component",
    "response_time_ms",
    "cue_level",
]

History = Union[pd.DataFrame, Iterable[ResponseRecord]]


def records_to_frame(records: Iterable[ResponseRecord]) -> pd.DataFrame:
    """Flatten response records into the history frame used by the analyzers."""

    rows = []
    for record in records:
        row = asdict(record)
        row.pop("metadata", None)
        rows.append(row)
    if not rows:
        return pd.DataFrame(columns=HISTORY_COLUMNS)
    return normalize_history(pd.DataFrame(rows))


def normalize_history(history: History) -> pd.DataFrame:
    """
    Coerce a history (frame or records) into canonical columns.

    Timestamps become timezone-aware UTC, components become enum values and
    rows without a parseable timestamp are dropped.
    """

    if not isinstance(history, pd.DataFrame):
        return records_to_frame(history)
    if history.empty:
        return pd.DataFrame(columns=HISTORY_COLUMNS)
    missing = {"correct", "timestamp"} - set(history.columns)
    if missing:
        raise ValueError(f"history is missing required columns: {sorted(missing)}")

    frame = history.copy()
    frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True, errors="coerce")
    frame = frame.dropna(subset=["timestamp"])
    if "component" not in frame.columns:
        frame["component"] = ComponentCode.LEX.value
    frame["component"] = frame["component"].map(lambda c: ComponentCode.from_code(c).value)
    if "session_id" not in frame.columns:
        frame["session_id"] = frame["timestamp"].dt.strftime("%Y-%m-%d")
    frame["session_id"] = frame["session_id"].astype(str)
    frame["correct"] = frame["correct"].astype(bool)
    return frame.sort_values("timestamp", kind="mergesort").reset_index(drop=True)


def window_history(
    history: History,
    now: Optional[datetime] = None,
    config: Optional[BottleneckConfig] = None,
) -> pd.DataFrame:
    """Rows inside the trailing analysis window ending at `now`."""

    config = config or BottleneckConfig()
    frame = normalize_history(history)
    if frame.empty:
        return frame
    end = _utc_timestamp(now)
    start = end - timedelta(days=config.window_days)
    return frame[(frame["timestamp"] >= start) & (frame["timestamp"] <= end)]


def _utc_timestamp(value: Optional[datetime]) -> pd.Timestamp:
    stamp = pd.Timestamp(value or datetime.now(timezone.utc))
    if stamp.tzinfo is None:
        return stamp.tz_localize("UTC")
    return stamp.tz_convert("UTC")


def _relative_trend(recent_rate: float, window_rate: float) -> float:
    if window_rate <= 0:
        return 0.0
    return (recent_rate - window_rate) / window_rate


def detect_bottlenecks(
    history: History,
    config: Optional[BottleneckConfig] = None,
    now: Optional[datetime] = None,
) -> List[BottleneckResult]:
    """
    One BottleneckResult per component, in cascade order.

    A component is flagged when its window error rate reaches the threshold,
    or when its recent error rate has grown by more than the trend threshold
    relative to the window rate (with at least `min_trend_errors` recent
    errors). Nothing is flagged while the window holds fewer than `min_events`
    responses, and a component needs `min_component_events` of its own.
    """

    config = config or BottleneckConfig()
    now = now or datetime.now(timezone.utc)
    window = window_history(history, now, config)
    enough_history = len(window) >= config.min_events
    if not enough_history:
        logger.debug(f"Bottleneck detection skipped: {len(window)}/{config.min_events} responses in window")

    recent_start = _utc_timestamp(now) - timedelta(days=config.recent_days)

    if window.empty:
        stats = pd.DataFrame(columns=["total", "errors", "recent_total", "recent_errors"])
    else:
        scored = window.assign(
            error=~window["correct"],
            recent=window["timestamp"] >= recent_start,
        )
        scored["recent_error"] = scored["error"] & scored["recent"]
        stats = scored.groupby("component").agg(
            total=("error", "size"),
            errors=("error", "sum"),
            recent_total=("recent", "sum"),
            recent_errors=("recent_error", "sum"),
        )

    results: List[BottleneckResult] = []
    for component in CASCADE_ORDER:
        if component.value in stats.index:
            row = stats.loc[component.value]
            total, errors = int(row["total"]), int(row["errors"])
            recent_total, recent_errors = int(row["recent_total"]), int(row["recent_errors"])
        else:
            total = errors = recent_total = recent_errors = 0

        rate = errors / total if total else 0.0
        recent_rate = recent_errors / recent_total if recent_total else 0.0
        trend = _relative_trend(recent_rate, rate)
        flagged = (
            enough_history
            and total >= config.min_component_events
            and (
                rate >= config.error_rate_threshold
                or (trend > config.trend_threshold and recent_errors >= config.min_trend_errors)
            )
        )
        if flagged:
            logger.info(f"Bottleneck flagged: {component.value} error_rate={rate:.2f} trend={trend:+.2f}")
        results.append(
            BottleneckResult(
                component=component,
                error_rate=rate,
                trend=trend,
                is_bottleneck=bool(flagged),
                total_responses=total,
                total_errors=errors,
                recent_errors=recent_errors,
            )
        )
    return results


def primary_bottleneck(results: Sequence[BottleneckResult]) -> Optional[ComponentCode]:
    """Earliest flagged component in cascade order, or None."""

    flagged = {r.component for r in results if r.is_bottleneck}
    for component in CASCADE_ORDER:
        if component in flagged:
            return component
    return None


def results_to_frame(results: Sequence[BottleneckResult]) -> pd.DataFrame:
    rows = []
    for result in results:
        row = asdict(result)
        row["component"] = result.component.value
        rows.append(row)
    return pd.DataFrame(rows)
