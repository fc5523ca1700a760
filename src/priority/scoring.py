# ABOUTME: Scores a candidate item's learning priority from static features and learner state.
# ABOUTME: Combines the weighted base score, the inverted-U mastery adjustment, and additive boosts.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from src.common.config import PriorityWeights, UrgencyConfig
from src.common.schemas import ItemFeatureVector, ItemParameter, MasteryState, clamp_theta, clamp_unit, to_utc
from src.irt.model import item_probability

# Breakpoints of the mastery adjustment curve as (m, g(m)).
MASTERY_CURVE = (
    (0.2, 0.5),
    (0.45, 1.0),
    (0.7, 0.8),
    (0.9, 0.3),
)
FOUNDATION_FLOOR = 0.5
MAINTENANCE_LEVEL = 0.3


@dataclass(frozen=True)
class ScoreBreakdown:
    item_id: str
    base: float
    mastery: float
    mastery_adjustment: float
    gap_multiplier: float
    urgency: float
    urgency_boost: float
    bottleneck_boost: float
    prerequisite_boost: float
    coverage_boost: float
    priority: float


def base_priority(
    features: ItemFeatureVector,
    target_domain: Optional[str] = None,
    weights: Optional[PriorityWeights] = None,
) -> float:
    """Weighted sum of the seven static dimensions after neutral defaulting."""

    weights = weights or PriorityWeights()
    f = features.resolved(target_domain)
    return (
        weights.frequency * f.frequency
        + weights.relational * f.relational_density
        + weights.domain * f.domain_fit
        + weights.morphological * f.morphological
        + weights.phonological * f.phonological
        + weights.syntactic * f.syntactic
        + weights.pragmatic * f.pragmatic
    )


def combined_mastery(stage: int, cue_free_accuracy: float) -> float:
    """m = (stage / 4 + cue-free accuracy) / 2, in [0, 1]."""

    return clamp_unit((clamp_unit(stage / 4.0) + clamp_unit(cue_free_accuracy)) / 2.0)


def mastery_function(m: float) -> float:
    """
    Inverted-U adjustment g(m).

    0.5 below 0.2, rising linearly to the 1.0 peak at 0.45, falling to 0.8 at 0.7,
    down to 0.3 at 0.9 and flat at 0.3 above.
    """

    m = clamp_unit(m)
    if m < MASTERY_CURVE[0][0]:
        return FOUNDATION_FLOOR
    for (x0, y0), (x1, y1) in zip(MASTERY_CURVE, MASTERY_CURVE[1:]):
        if m <= x1:
            return y0 + (y1 - y0) * (m - x0) / (x1 - x0)
    return MAINTENANCE_LEVEL


def effective_mastery(state: MasteryState, estimated_accuracy: Optional[float] = None) -> float:
    """
    Combined mastery m for a record. estimated_accuracy replaces the cue-free
    stream when the learner has no observed accuracy yet.
    """

    accuracy = state.cue_free_accuracy
    if estimated_accuracy is not None and state.exposure_count <= 0:
        accuracy = estimated_accuracy
    return combined_mastery(state.stage, accuracy)


def mastery_adjustment(state: MasteryState, estimated_accuracy: Optional[float] = None) -> float:
    """g(m) for a mastery record."""

    return mastery_function(effective_mastery(state, estimated_accuracy))


def gap_multiplier(state: MasteryState, weights: Optional[PriorityWeights] = None) -> float:
    weights = weights or PriorityWeights()
    return 1.0 + state.scaffolding_gap * weights.gap_multiplier


def urgency_score(
    next_review: Optional[datetime],
    now: Optional[datetime] = None,
    config: Optional[UrgencyConfig] = None,
) -> float:
    """
    Review urgency in [0, 1].

    Never-reviewed items get the maximum. Overdue items ramp from the due
    baseline to 1 over `overdue_ramp_hours`; items not yet due decay towards
    `min_urgency` over `horizon_hours`.
    """

    config = config or UrgencyConfig()
    if next_review is None:
        return config.new_item_urgency
    now = to_utc(now) or datetime.now(timezone.utc)
    hours = (now - to_utc(next_review)).total_seconds() / 3600.0
    if hours >= 0:
        return min(1.0, config.due_baseline + hours / config.overdue_ramp_hours)
    return max(config.min_urgency, config.due_baseline + hours / config.horizon_hours)


def effective_priority(
    base: float,
    adjustment: float,
    multiplier: float,
    urgency: float = 0.0,
    bottleneck: bool = False,
    prerequisite: float = 0.0,
    coverage_gap: float = 0.0,
    weights: Optional[PriorityWeights] = None,
) -> float:
    """clamp(base * g(m) * gapMultiplier + weighted boosts, 0, 1); non-finite results become 0."""

    weights = weights or PriorityWeights()
    boosts = (
        weights.urgency * clamp_unit(urgency)
        + (weights.bottleneck if bottleneck else 0.0)
        + weights.prerequisite * clamp_unit(prerequisite)
        + weights.coverage_gap * clamp_unit(coverage_gap)
    )
    value = base * adjustment * multiplier + boosts
    if not math.isfinite(value):
        return 0.0
    return clamp_unit(value)


def score_breakdown(
    features: ItemFeatureVector,
    state: Optional[MasteryState] = None,
    theta_component: Optional[float] = None,
    bottleneck_flag: bool = False,
    prerequisite_boost: float = 0.0,
    coverage_gap: float = 0.0,
    weights: Optional[PriorityWeights] = None,
    now: Optional[datetime] = None,
    item_parameter: Optional[ItemParameter] = None,
    target_domain: Optional[str] = None,
    urgency_config: Optional[UrgencyConfig] = None,
) -> ScoreBreakdown:
    weights = weights or PriorityWeights()
    state = (state or MasteryState()).normalized()

    estimated = None
    if theta_component is not None and item_parameter is not None:
        estimated = item_probability(clamp_theta(theta_component), item_parameter)

    m = effective_mastery(state, estimated)
    base = base_priority(features, target_domain, weights)
    adjustment = mastery_adjustment(state, estimated)
    multiplier = gap_multiplier(state, weights)
    urgency = urgency_score(state.next_review, now, urgency_config)
    prerequisite = clamp_unit(prerequisite_boost)
    coverage = clamp_unit(coverage_gap)

    priority = effective_priority(
        base,
        adjustment,
        multiplier,
        urgency=urgency,
        bottleneck=bottleneck_flag,
        prerequisite=prerequisite,
        coverage_gap=coverage,
        weights=weights,
    )
    return ScoreBreakdown(
        item_id=features.item_id,
        base=base,
        mastery=m,
        mastery_adjustment=adjustment,
        gap_multiplier=multiplier,
        urgency=urgency,
        urgency_boost=weights.urgency * urgency,
        bottleneck_boost=weights.bottleneck if bottleneck_flag else 0.0,
        prerequisite_boost=weights.prerequisite * prerequisite,
        coverage_boost=weights.coverage_gap * coverage,
        priority=priority,
    )


def score(
    features: ItemFeatureVector,
    state: Optional[MasteryState] = None,
    theta_component: Optional[float] = None,
    bottleneck_flag: bool = False,
    prerequisite_boost: float = 0.0,
    coverage_gap: float = 0.0,
    weights: Optional[PriorityWeights] = None,
    now: Optional[datetime] = None,
    item_parameter: Optional[ItemParameter] = None,
    target_domain: Optional[str] = None,
    urgency_config: Optional[UrgencyConfig] = None,
) -> float:
    """
    Priority in [0, 1] for one item.

    Parameters
    ----------
    features : ItemFeatureVector
        Static item features; missing entries count as 0.5.
    state : MasteryState, optional
        Learner's record for this item; a fresh record when omitted.
    theta_component : float, optional
        Learner ability on the item's component. Together with `item_parameter`
        it predicts accuracy for items the learner has never answered.
    bottleneck_flag : bool
        Whether the item's component is the active bottleneck.
    prerequisite_boost, coverage_gap : float
        Pre-weighting boosts in [0, 1].
    """

    return score_breakdown(
        features,
        state,
        theta_component=theta_component,
        bottleneck_flag=bottleneck_flag,
        prerequisite_boost=prerequisite_boost,
        coverage_gap=coverage_gap,
        weights=weights,
        now=now,
        item_parameter=item_parameter,
        target_domain=target_domain,
        urgency_config=urgency_config,
    ).priority
