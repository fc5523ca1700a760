# ABOUTME: Tests per-component bottleneck detection over trailing windows of response history.
# ABOUTME: Uses synthetic histories with controlled error rates, trends, and event counts.

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from src.bottleneck.detection import (
    detect_bottlenecks,
    normalize_history,
    primary_bottleneck,
    records_to_frame,
)
from src.common.config import BottleneckConfig
from src.common.schemas import BottleneckResult, ComponentCode, ResponseRecord

NOW = datetime(2024, 4, 15, 12, 0, tzinfo=timezone.utc)


def _history(error_counts, per_component=20, days=14, sessions=7):
    """error_counts maps component -> number of incorrect responses out of per_component."""

    rows = []
    for component in ComponentCode:
        errors = error_counts.get(component, 0)
        # spread errors evenly over the window so there is no trend
        error_slots = set(round(k * per_component / errors) for k in range(errors)) if errors else set()
        for k in range(per_component):
            ts = NOW - timedelta(days=days) + timedelta(days=days * (k + 0.5) / per_component)
            rows.append(
                {
                    "item_id": f"{component.value}-{k}",
                    "correct": k not in error_slots,
                    "timestamp": ts,
                    "session_id": f"s{k % sessions}",
                    "component": component.value,
                }
            )
    return pd.DataFrame(rows)


def _result(results, component):
    return next(r for r in results if r.component == component)


def test_morphology_at_forty_percent_is_the_only_bottleneck():
    history = _history({ComponentCode.MORPH: 8, ComponentCode.LEX: 1, ComponentCode.SYNT: 1})
    results = detect_bottlenecks(history, now=NOW)
    flagged = [r.component for r in results if r.is_bottleneck]
    assert flagged == [ComponentCode.MORPH]
    morph = _result(results, ComponentCode.MORPH)
    assert morph.error_rate == pytest.approx(0.4)
    assert morph.total_responses == 20
    assert [r.component for r in results] == list(ComponentCode)


def test_insufficient_history_yields_no_flags():
    history = _history({ComponentCode.PHON: 4}, per_component=1)
    history = history[history["component"] == "PHON"]
    results = detect_bottlenecks(history, now=NOW)
    assert not any(r.is_bottleneck for r in results)


def test_component_needs_its_own_minimum():
    history = _history({ComponentCode.PRAG: 2}, per_component=3)
    extra = _history({}, per_component=20)
    history = pd.concat([history[history["component"] == "PRAG"], extra[extra["component"] == "LEX"]])
    results = detect_bottlenecks(history, now=NOW)
    prag = _result(results, ComponentCode.PRAG)
    assert prag.error_rate == pytest.approx(2 / 3)
    assert not prag.is_bottleneck


def test_empty_history_returns_clean_results():
    results = detect_bottlenecks(pd.DataFrame(), now=NOW)
    assert len(results) == 5
    assert all(r.error_rate == 0.0 and not r.is_bottleneck for r in results)
    assert detect_bottlenecks([], now=NOW)[0].total_responses == 0


def test_events_outside_window_are_ignored():
    history = _history({ComponentCode.SYNT: 10})
    history["timestamp"] = history["timestamp"] - timedelta(days=30)
    results = detect_bottlenecks(history, now=NOW)
    assert all(r.total_responses == 0 for r in results)


def test_rising_recent_errors_flag_trend():
    rows = []
    for k in range(20):
        ts = NOW - timedelta(days=13) + timedelta(hours=15 * k)
        recent = ts >= NOW - timedelta(days=7)
        # 4 of the recent responses are wrong, none of the old ones
        rows.append({"correct": not (recent and k % 2 == 0 and k >= 12), "timestamp": ts, "session_id": f"s{k}", "component": "SYNT"})
    results = detect_bottlenecks(pd.DataFrame(rows), now=NOW)
    synt = _result(results, ComponentCode.SYNT)
    assert synt.error_rate < 0.30
    assert synt.trend > 0.5
    assert synt.is_bottleneck


def test_threshold_is_configurable():
    history = _history({ComponentCode.LEX: 5})
    assert not _result(detect_bottlenecks(history, now=NOW), ComponentCode.LEX).is_bottleneck
    strict = BottleneckConfig(error_rate_threshold=0.2)
    assert _result(detect_bottlenecks(history, strict, now=NOW), ComponentCode.LEX).is_bottleneck


def test_primary_bottleneck_is_earliest_in_cascade():
    results = [
        BottleneckResult(component=ComponentCode.SYNT, error_rate=0.6, trend=0.0, is_bottleneck=True),
        BottleneckResult(component=ComponentCode.MORPH, error_rate=0.35, trend=0.0, is_bottleneck=True),
        BottleneckResult(component=ComponentCode.PHON, error_rate=0.1, trend=0.0, is_bottleneck=False),
    ]
    assert primary_bottleneck(results) == ComponentCode.MORPH
    assert primary_bottleneck([]) is None


def test_records_and_aliases_normalize():
    records = [
        ResponseRecord(item_id="x", correct=False, timestamp=NOW, session_id="s1", component=ComponentCode.PHON),
        ResponseRecord(item_id="y", correct=True, timestamp=NOW, session_id="s1"),
    ]
    frame = records_to_frame(records)
    assert list(frame["component"]) == ["PHON", "LEX"]
    aliased = normalize_history(pd.DataFrame({"correct": [1], "timestamp": ["2024-04-01"], "component": ["G2P"]}))
    assert aliased.loc[0, "component"] == "PHON"
    assert str(aliased["timestamp"].dt.tz) == "UTC"
