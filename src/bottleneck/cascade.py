# ABOUTME: Explains flagged components through the PHON->MORPH->LEX->SYNT->PRAG cascade.
# ABOUTME: Finds session-level error co-occurrence, root causes, and remediation plans.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import pandas as pd

from src.common.config import BottleneckConfig
from src.common.schemas import (
    CASCADE_ORDER,
    COMPONENT_NAMES,
    COMPONENT_SHORT,
    BottleneckResult,
    ComponentCode,
    require_exhaustive,
)

from .detection import History, detect_bottlenecks, normalize_history, primary_bottleneck, window_history

TASK_TYPES: Dict[ComponentCode, List[str]] = {
    ComponentCode.PHON: ["dictation", "listening_comprehension", "word_formation_analysis"],
    ComponentCode.MORPH: ["word_formation_analysis", "constrained_fill", "sentence_completion"],
    ComponentCode.LEX: ["cloze_deletion", "word_bank_fill", "matching", "collocation_judgment"],
    ComponentCode.SYNT: ["sentence_combining", "sentence_splitting", "grammar_identification", "error_correction"],
    ComponentCode.PRAG: ["register_shift", "register_appropriateness", "dialogue_completion"],
}
require_exhaustive(TASK_TYPES, "TASK_TYPES")

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}
REMEDIATION_FLOOR = 0.15
CONFIDENCE_SAMPLE = 50
CASCADE_BONUS = 0.2
MAX_DIFFERENTIATION_BONUS = 0.2
IMPROVEMENT_MARGIN = 0.05


@dataclass(frozen=True)
class CooccurrencePair:
    upstream: ComponentCode
    downstream: ComponentCode
    sessions: int
    lift: float


@dataclass(frozen=True)
class CascadeAnalysis:
    root_cause: Optional[ComponentCode]
    chain: List[ComponentCode] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class BottleneckAnalysis:
    primary: Optional[ComponentCode]
    confidence: float
    results: List[BottleneckResult]
    cascade: CascadeAnalysis
    cooccurrences: List[CooccurrencePair]
    recommendation: str


@dataclass
class RemediationItem:
    component: ComponentCode
    priority: str
    error_rate: float
    trend: float
    recommendation: str
    task_types: List[str]


def find_cooccurring_errors(
    history: History,
    target: Optional[ComponentCode] = None,
    config: Optional[BottleneckConfig] = None,
) -> List[CooccurrencePair]:
    """
    Component pairs whose errors land in the same sessions more often than chance.

    Builds a session x component error matrix; a pair qualifies when it shares
    at least `min_cooccurrence` sessions and its lift (observed / expected
    shared sessions under independence) exceeds 1. Pairs are oriented
    upstream -> downstream in cascade order.
    """

    config = config or BottleneckConfig()
    frame = normalize_history(history)
    if frame.empty:
        return []

    n_sessions = frame["session_id"].nunique()
    errors = frame[~frame["correct"]]
    if errors.empty:
        return []
    matrix = pd.crosstab(errors["session_id"], errors["component"]).clip(upper=1)
    matrix = matrix.reindex(columns=[c.value for c in CASCADE_ORDER], fill_value=0)
    session_rates = matrix.sum(axis=0) / n_sessions

    pairs: List[CooccurrencePair] = []
    for i, upstream in enumerate(CASCADE_ORDER):
        for downstream in CASCADE_ORDER[i + 1 :]:
            if target is not None and target not in (upstream, downstream):
                continue
            shared = int((matrix[upstream.value] & matrix[downstream.value]).sum())
            if shared < config.min_cooccurrence:
                continue
            expected = session_rates[upstream.value] * session_rates[downstream.value] * n_sessions
            lift = shared / expected if expected > 0 else 0.0
            if lift > 1.0:
                pairs.append(CooccurrencePair(upstream=upstream, downstream=downstream, sessions=shared, lift=float(lift)))
    pairs.sort(key=lambda p: (-p.sessions, -p.lift, p.upstream.position, p.downstream.position))
    return pairs


def analyze_cascade(
    results: Sequence[BottleneckResult],
    config: Optional[BottleneckConfig] = None,
) -> CascadeAnalysis:
    """
    Earliest component over the error threshold whose downstream components
    are elevated too (>= downstream_ratio x threshold) is the root cause.
    """

    config = config or BottleneckConfig()
    evidence = {r.component: r for r in results if r.total_responses >= config.min_component_events}
    for component in CASCADE_ORDER:
        result = evidence.get(component)
        if result is None or result.error_rate < config.error_rate_threshold:
            continue
        elevated = [
            later
            for later in component.downstream()
            if later in evidence
            and evidence[later].error_rate >= config.error_rate_threshold * config.downstream_ratio
        ]
        if elevated:
            return CascadeAnalysis(root_cause=component, chain=[component, *elevated], confidence=config.cascade_confidence)
    return CascadeAnalysis(root_cause=None)


def _confidence(results: Sequence[BottleneckResult], total_responses: int, cascade: CascadeAnalysis, config: BottleneckConfig) -> float:
    rates = sorted((r.error_rate for r in results if r.total_responses >= config.min_component_events), reverse=True)
    if not rates:
        return 0.0
    data = min(1.0, total_responses / CONFIDENCE_SAMPLE)
    cascade_bonus = CASCADE_BONUS if cascade.root_cause is not None else 0.0
    differentiation = rates[0] - rates[1] if len(rates) >= 2 else 0.0
    return min(1.0, data + cascade_bonus + min(MAX_DIFFERENTIATION_BONUS, differentiation))


def _improvement(result: BottleneckResult) -> float:
    # window rate minus recent rate; positive means errors are dropping
    return -result.trend * result.error_rate


def _recommendation(primary: Optional[ComponentCode], results: Sequence[BottleneckResult], cascade: CascadeAnalysis) -> str:
    if primary is None:
        return "No significant bottleneck detected. Continue balanced practice across all areas."
    result = next((r for r in results if r.component == primary), None)
    percent = round(result.error_rate * 100) if result else 0
    text = f"Focus on {COMPONENT_NAMES[primary]} ({percent}% error rate)."
    if cascade.root_cause == primary and len(cascade.chain) > 1:
        downstream = ", ".join(COMPONENT_SHORT[c] for c in cascade.chain[1:])
        text += f" Improving this will also help with {downstream}."
    if result is not None:
        improvement = _improvement(result)
        if improvement > IMPROVEMENT_MARGIN:
            text += " (Already improving - keep it up!)"
        elif improvement < -IMPROVEMENT_MARGIN:
            text += " (Needs extra attention - performance declining.)"
    return text


def analyze_bottleneck(
    history: History,
    config: Optional[BottleneckConfig] = None,
    now: Optional[datetime] = None,
) -> BottleneckAnalysis:
    """Full diagnosis: per-component results, cascade root cause, co-occurrence, and advice."""

    config = config or BottleneckConfig()
    now = now or datetime.now(timezone.utc)
    window = window_history(history, now, config)
    results = detect_bottlenecks(window, config, now)
    if len(window) < config.min_events:
        return BottleneckAnalysis(
            primary=None,
            confidence=0.0,
            results=results,
            cascade=CascadeAnalysis(root_cause=None),
            cooccurrences=[],
            recommendation=f"Need more data for analysis ({len(window)}/{config.min_events} responses)",
        )

    cascade = analyze_cascade(results, config)
    primary = primary_bottleneck(results)
    return BottleneckAnalysis(
        primary=primary,
        confidence=_confidence(results, len(window), cascade, config),
        results=results,
        cascade=cascade,
        cooccurrences=find_cooccurring_errors(window, config=config),
        recommendation=_recommendation(primary, results, cascade),
    )


def summarize_bottleneck(analysis: BottleneckAnalysis) -> str:
    if analysis.primary is None:
        return "No bottleneck detected"
    result = next((r for r in analysis.results if r.component == analysis.primary), None)
    if result is None:
        return f"Bottleneck: {COMPONENT_SHORT[analysis.primary]}"
    return f"{COMPONENT_SHORT[analysis.primary]} ({round(result.error_rate * 100)}% errors)"


def build_remediation_plan(results: Sequence[BottleneckResult]) -> List[RemediationItem]:
    """
    Rank components that need work as high/medium/low, with suggested task types.

    Flagged components and any component above a 15% error rate are included.
    """

    plan: List[RemediationItem] = []
    for result in results:
        if not result.is_bottleneck and result.error_rate < REMEDIATION_FLOOR:
            continue
        if result.error_rate >= 0.4 or result.trend > 0.5:
            priority = "high"
        elif result.error_rate >= 0.25 or result.trend > 0.2:
            priority = "medium"
        else:
            priority = "low"
        plan.append(
            RemediationItem(
                component=result.component,
                priority=priority,
                error_rate=result.error_rate,
                trend=result.trend,
                recommendation=(
                    f"Practice {COMPONENT_SHORT[result.component]}: "
                    f"{round(result.error_rate * 100)}% errors over the window."
                ),
                task_types=list(TASK_TYPES[result.component]),
            )
        )
    plan.sort(key=lambda item: (PRIORITY_ORDER[item.priority], item.component.position))
    return plan
