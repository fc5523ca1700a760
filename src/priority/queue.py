# ABOUTME: Builds the ranked learning queue a session draws its items from.
# ABOUTME: Applies bottleneck and prerequisite boosts, session mixing, and queue summaries.

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from src.common.config import DEFAULT_CONFIG, EngineConfig
from src.common.schemas import (
    BottleneckResult,
    CASCADE_ORDER,
    ComponentCode,
    ItemFeatureVector,
    ItemParameter,
    MasteryState,
    ThetaState,
    to_utc,
)

from .prerequisites import prerequisite_boost
from .scoring import score_breakdown

QUEUE_COLUMNS = ["item_id", "component", "priority", "urgency", "is_bottleneck", "stage", "next_review"]


@dataclass(frozen=True)
class QueueCandidate:
    features: ItemFeatureVector
    mastery: MasteryState = field(default_factory=MasteryState)
    item_parameter: Optional[ItemParameter] = None
    coverage_gap: float = 0.0

    @property
    def item_id(self) -> str:
        return self.features.item_id

    @property
    def component(self) -> ComponentCode:
        return ComponentCode.from_code(self.features.component)


@dataclass(frozen=True)
class QueueEntry:
    item_id: str
    component: ComponentCode
    priority: float
    urgency: float
    is_bottleneck: bool
    stage: int = 0
    next_review: Optional[datetime] = None

    @property
    def is_new(self) -> bool:
        return self.next_review is None


@dataclass
class QueueAnalysis:
    total_items: int
    due_items: int
    new_items: int
    bottleneck_items: int
    average_priority: float
    component_distribution: Dict[str, int]


def _boosted_components(
    bottlenecks: Optional[Iterable[BottleneckResult]],
    boost_all_flagged: bool,
) -> set:
    flagged = {b.component for b in (bottlenecks or ()) if b.is_bottleneck}
    if boost_all_flagged or not flagged:
        return flagged
    primary = next(c for c in CASCADE_ORDER if c in flagged)
    return {primary}


def build_learning_queue(
    candidates: Iterable[QueueCandidate],
    theta: Optional[ThetaState] = None,
    bottlenecks: Optional[Iterable[BottleneckResult]] = None,
    blocking: Optional[Mapping[ComponentCode, float]] = None,
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
    target_domain: Optional[str] = None,
    limit: Optional[int] = None,
    boost_all_flagged: bool = False,
) -> List[QueueEntry]:
    """
    Score every candidate and return the queue ordered by priority, then urgency.

    Parameters
    ----------
    candidates : Iterable[QueueCandidate]
        Items with their static features and the learner's mastery records.
    theta : ThetaState, optional
        Current ability; the item's component theta seeds never-answered items.
    bottlenecks : Iterable[BottleneckResult], optional
        Detection output. Only the primary (earliest flagged) component is
        boosted unless `boost_all_flagged` is set.
    blocking : Mapping[ComponentCode, float], optional
        Automation gaps from `blocking_components`.
    limit : int, optional
        Truncate the queue after ranking.
    """

    config = config or DEFAULT_CONFIG
    now = now or datetime.now(timezone.utc)
    boosted = _boosted_components(bottlenecks, boost_all_flagged)
    blocking = blocking or {}

    entries: List[QueueEntry] = []
    for candidate in candidates:
        component = candidate.component
        state = candidate.mastery.normalized()
        theta_component = theta.for_component(component) if theta is not None else None
        breakdown = score_breakdown(
            candidate.features,
            state,
            theta_component=theta_component,
            bottleneck_flag=component in boosted,
            prerequisite_boost=prerequisite_boost(component, blocking, config.prerequisite),
            coverage_gap=candidate.coverage_gap,
            weights=config.weights,
            now=now,
            item_parameter=candidate.item_parameter,
            target_domain=target_domain,
            urgency_config=config.urgency,
        )
        entries.append(
            QueueEntry(
                item_id=candidate.item_id,
                component=component,
                priority=breakdown.priority,
                urgency=breakdown.urgency,
                is_bottleneck=component in boosted,
                stage=state.stage,
                next_review=state.next_review,
            )
        )

    entries.sort(key=lambda e: (-e.priority, -e.urgency, e.item_id))
    if limit is not None:
        entries = entries[: max(0, limit)]
    return entries


def select_session_items(
    queue: Sequence[QueueEntry],
    session_size: int,
    new_item_ratio: float = 0.3,
    now: Optional[datetime] = None,
) -> List[QueueEntry]:
    """
    Mix due reviews and new items for one session.

    At most floor(size * ratio) new items are taken; remaining slots go to due
    reviews and are backfilled from the rest of the queue when either pool runs
    short. Queue order is preserved.
    """

    if session_size <= 0 or not queue:
        return []
    now = to_utc(now) or datetime.now(timezone.utc)
    ratio = min(1.0, max(0.0, new_item_ratio))
    max_new = int(session_size * ratio)
    max_due = session_size - max_new

    new_items = [e for e in queue if e.is_new or e.stage == 0]
    new_ids = {e.item_id for e in new_items}
    due_items = [e for e in queue if e.item_id not in new_ids and to_utc(e.next_review) <= now]

    chosen = {e.item_id for e in due_items[:max_due]} | {e.item_id for e in new_items[:max_new]}
    for entry in queue:
        if len(chosen) >= session_size:
            break
        chosen.add(entry.item_id)
    return [e for e in queue if e.item_id in chosen][:session_size]


def analyze_queue(queue: Sequence[QueueEntry], now: Optional[datetime] = None) -> QueueAnalysis:
    now = to_utc(now) or datetime.now(timezone.utc)
    distribution: Dict[str, int] = {}
    due = new = bottleneck = 0
    for entry in queue:
        distribution[entry.component.value] = distribution.get(entry.component.value, 0) + 1
        if entry.next_review is None or to_utc(entry.next_review) <= now:
            due += 1
        if entry.stage == 0:
            new += 1
        if entry.is_bottleneck:
            bottleneck += 1
    average = sum(e.priority for e in queue) / len(queue) if queue else 0.0
    return QueueAnalysis(
        total_items=len(queue),
        due_items=due,
        new_items=new,
        bottleneck_items=bottleneck,
        average_priority=average,
        component_distribution=distribution,
    )


def queue_to_frame(queue: Sequence[QueueEntry]) -> pd.DataFrame:
    """Export the queue (write-back contract rows) as a DataFrame."""

    if not queue:
        return pd.DataFrame(columns=QUEUE_COLUMNS)
    rows = []
    for entry in queue:
        row = asdict(entry)
        row["component"] = entry.component.value
        rows.append(row)
    return pd.DataFrame(rows, columns=QUEUE_COLUMNS)
