# ABOUTME: Tests joint maximum likelihood item calibration on simulated responses.
# ABOUTME: Checks the per-item response threshold and recovery of difficulty ordering.

import numpy as np
import pandas as pd

from src.common.config import IrtConfig
from src.common.schemas import ItemParameter
from src.irt.calibration import build_response_matrix, calibrate_items
from src.irt.model import probability


def _simulate(n_learners=400, difficulties=(-1.5, 0.0, 1.5), seed=11):
    rng = np.random.default_rng(seed)
    thetas = rng.normal(0.0, 1.0, n_learners)
    data = {}
    for k, b in enumerate(difficulties):
        p = probability(thetas, 1.0, b, 0.0)
        data[f"item_{k}"] = (rng.uniform(size=n_learners) < p).astype(float)
    return pd.DataFrame(data, index=[f"u{i}" for i in range(n_learners)])


def test_below_threshold_is_a_noop():
    matrix = _simulate(n_learners=5)
    result = calibrate_items(matrix)
    assert result.calibrated is False
    assert result.items == []
    assert len(result.skipped_items) == 3


def test_empty_matrix_is_a_noop():
    result = calibrate_items(pd.DataFrame())
    assert result.calibrated is False


def test_recovers_difficulty_ordering():
    result = calibrate_items(_simulate())
    assert result.calibrated
    by_id = {item.id: item for item in result.items}
    assert by_id["item_0"].b < by_id["item_1"].b < by_id["item_2"].b
    for item in result.items:
        assert 0.05 <= item.a <= 4.0
        assert -3.0 <= item.b <= 3.0
        assert item.c == 0.0


def test_guessing_parameter_is_held_fixed():
    initial = {"item_1": ItemParameter(id="item_1", a=1.0, b=0.0, c=0.2)}
    result = calibrate_items(_simulate(), initial=initial)
    by_id = {item.id: item for item in result.items}
    assert by_id["item_1"].c == 0.2


def test_sparse_items_are_skipped_but_others_calibrate():
    matrix = _simulate()
    matrix["rare"] = np.nan
    matrix.iloc[:3, matrix.columns.get_loc("rare")] = 1.0
    result = calibrate_items(matrix, config=IrtConfig(min_responses_per_item=10))
    assert result.calibrated
    assert "rare" in result.skipped_items
    assert "rare" not in {item.id for item in result.items}


def test_build_response_matrix_keeps_latest_attempt():
    events = pd.DataFrame(
        {
            "user_id": ["u1", "u1", "u2"],
            "item_id": ["q1", "q1", "q1"],
            "correct": [0, 1, 0],
            "timestamp": pd.to_datetime(["2024-01-01", "2024-01-02", "2024-01-01"]),
        }
    )
    matrix = build_response_matrix(events)
    assert matrix.loc["u1", "q1"] == 1.0
    assert matrix.loc["u2", "q1"] == 0.0
