# ABOUTME: Tests the priority formula: base score, mastery curve, urgency, and boosts.
# ABOUTME: Includes the reference golden scenario and a seeded fuzz sweep over the input space.

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from src.common.config import PriorityWeights
from src.common.schemas import ComponentCode, ItemFeatureVector, ItemParameter, MasteryState
from src.priority.scoring import (
    base_priority,
    combined_mastery,
    effective_priority,
    mastery_adjustment,
    mastery_function,
    score,
    score_breakdown,
    urgency_score,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _golden_item():
    return ItemFeatureVector(
        item_id="golden",
        frequency=0.9,
        relational_density=0.8,
        domain_distribution={"medical": 0.5},
        morphological_score=0.5,
        phonological_difficulty=0.5,
        syntactic_complexity=0.5,
        pragmatic_score=0.5,
    )


def test_golden_scenario_matches_expected_priority():
    state = MasteryState(stage=2, cue_free_accuracy=0.55, cue_assisted_accuracy=0.70, exposure_count=6)
    breakdown = score_breakdown(_golden_item(), state, now=NOW, target_domain="medical")
    assert breakdown.base == pytest.approx(0.386)
    assert breakdown.mastery == pytest.approx(0.525)
    assert breakdown.mastery_adjustment == pytest.approx(0.94)
    assert breakdown.gap_multiplier == pytest.approx(1.075)
    assert breakdown.urgency == 1.0
    assert breakdown.priority == pytest.approx(0.530053)
    assert breakdown.priority >= 0.5


def test_default_weights_split():
    weights = PriorityWeights()
    assert weights.linguistic_total == pytest.approx(0.60)
    assert weights.urgency + weights.bottleneck == pytest.approx(0.20)
    assert weights.prerequisite + weights.coverage_gap == pytest.approx(0.20)


def test_missing_features_default_to_neutral():
    empty = ItemFeatureVector(item_id="blank")
    assert base_priority(empty) == pytest.approx(0.5 * 0.60)


def test_domain_fit_uses_target_domain():
    item = ItemFeatureVector(item_id="d", domain_distribution={"legal": 1.0, "medical": 0.0})
    assert base_priority(item, "legal") - base_priority(item, "medical") == pytest.approx(0.10)
    assert base_priority(item, "finance") == base_priority(item)


@pytest.mark.parametrize("boundary", [0.2, 0.45, 0.7, 0.9])
def test_mastery_curve_is_continuous_at_boundaries(boundary):
    eps = 1e-9
    assert mastery_function(boundary - eps) == pytest.approx(mastery_function(boundary + eps), abs=1e-6)


def test_mastery_curve_shape():
    assert mastery_function(0.0) == 0.5
    assert mastery_function(0.19) == 0.5
    assert mastery_function(0.45) == pytest.approx(1.0)
    assert mastery_function(0.7) == pytest.approx(0.8)
    assert mastery_function(0.9) == pytest.approx(0.3)
    assert mastery_function(0.95) == pytest.approx(0.3)
    assert mastery_function(1.0) == pytest.approx(0.3)
    assert mastery_function(0.3) < mastery_function(0.4) < mastery_function(0.45)
    assert mastery_function(0.5) > mastery_function(0.6) > mastery_function(0.8)


def test_combined_mastery():
    assert combined_mastery(2, 0.55) == pytest.approx(0.525)
    assert combined_mastery(9, 2.0) == 1.0


def test_predicted_accuracy_seeds_unanswered_items():
    fresh = MasteryState(stage=1)
    # theta well above b predicts high accuracy and moves m into the ZPD
    seeded = mastery_adjustment(fresh, estimated_accuracy=0.8)
    assert seeded == pytest.approx(mastery_function(combined_mastery(1, 0.8)))
    answered = MasteryState(stage=1, exposure_count=3)
    assert mastery_adjustment(answered, estimated_accuracy=0.8) == mastery_function(combined_mastery(1, 0.0))

    item = ItemFeatureVector(item_id="x")
    easy = ItemParameter(id="x", a=1.5, b=-2.0)
    with_theta = score_breakdown(item, fresh, theta_component=1.0, item_parameter=easy, now=NOW)
    without_theta = score_breakdown(item, fresh, now=NOW)
    assert with_theta.mastery > without_theta.mastery


def test_urgency_schedule():
    assert urgency_score(None, NOW) == 1.0
    assert urgency_score(NOW, NOW) == pytest.approx(0.5)
    assert urgency_score(NOW - timedelta(hours=24), NOW) == pytest.approx(1.0)
    assert urgency_score(NOW - timedelta(hours=12), NOW) == pytest.approx(0.75)
    assert urgency_score(NOW + timedelta(hours=84), NOW) == pytest.approx(0.1)
    assert urgency_score(NOW + timedelta(days=30), NOW) == pytest.approx(0.1)
    not_due = urgency_score(NOW + timedelta(hours=24), NOW)
    assert 0.1 < not_due < 0.5


def test_boosts_are_additive_and_weighted():
    weights = PriorityWeights()
    base = effective_priority(0.2, 1.0, 1.0, weights=weights)
    boosted = effective_priority(0.2, 1.0, 1.0, bottleneck=True, prerequisite=0.5, coverage_gap=1.0, weights=weights)
    assert boosted - base == pytest.approx(0.06 + 0.12 * 0.5 + 0.08)


def test_effective_priority_clamps_and_guards_non_finite():
    assert effective_priority(5.0, 1.0, 2.0, urgency=1.0) == 1.0
    assert effective_priority(float("nan"), 1.0, 1.0) == 0.0
    assert effective_priority(float("inf"), 1.0, 1.0) == 0.0


def test_priority_always_in_unit_interval_under_fuzzing():
    rng = np.random.default_rng(2024)
    components = list(ComponentCode)
    for k in range(2000):
        features = ItemFeatureVector(
            item_id=f"f{k}",
            component=components[k % len(components)],
            frequency=rng.uniform(-0.5, 1.5) if rng.uniform() > 0.2 else None,
            relational_density=rng.uniform(0, 1) if rng.uniform() > 0.2 else None,
            domain_distribution={"d": float(rng.uniform(0, 1))},
            morphological_score=rng.uniform(0, 1),
            phonological_difficulty=rng.uniform(0, 1) if rng.uniform() > 0.5 else None,
            syntactic_complexity=rng.uniform(0, 1),
            pragmatic_score=rng.uniform(0, 1),
        )
        next_review = None if rng.uniform() < 0.3 else NOW + timedelta(hours=float(rng.uniform(-500, 500)))
        state = MasteryState(
            stage=int(rng.integers(0, 5)),
            cue_free_accuracy=float(rng.uniform(0, 1)),
            cue_assisted_accuracy=float(rng.uniform(0, 1)),
            exposure_count=int(rng.integers(0, 20)),
            next_review=next_review,
        )
        value = score(
            features,
            state,
            theta_component=float(rng.uniform(-3, 3)),
            bottleneck_flag=bool(rng.integers(0, 2)),
            prerequisite_boost=float(rng.uniform(0, 1)),
            coverage_gap=float(rng.uniform(0, 1)),
            now=NOW,
            item_parameter=ItemParameter(id=f"f{k}", a=float(rng.uniform(0.2, 2.5)), b=float(rng.uniform(-3, 3))),
            target_domain="d",
        )
        assert 0.0 <= value <= 1.0
        assert np.isfinite(value)


def test_naive_review_timestamps_are_read_as_utc():
    naive = MasteryState(stage=1, exposure_count=2, next_review=datetime(2024, 5, 31, 12))
    aware = MasteryState(stage=1, exposure_count=2, next_review=datetime(2024, 5, 31, 12, tzinfo=timezone.utc))
    features = ItemFeatureVector(item_id="x")
    assert score(features, naive, now=NOW) == score(features, aware, now=NOW)
    assert 0.0 <= score(features, naive) <= 1.0
    assert urgency_score(datetime(2024, 5, 31, 12), datetime(2024, 6, 1)) == pytest.approx(0.75)


def test_breakdown_adjustment_uses_estimated_accuracy_for_unseen_items():
    state = MasteryState(stage=0, exposure_count=0)
    item = ItemParameter(id="x", a=1.0, b=0.0)
    breakdown = score_breakdown(ItemFeatureVector(item_id="x"), state, theta_component=0.0, item_parameter=item, now=NOW)
    assert breakdown.mastery == pytest.approx(0.25)
    assert breakdown.mastery_adjustment == pytest.approx(mastery_adjustment(state, 0.5))
