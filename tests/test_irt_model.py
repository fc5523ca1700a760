# ABOUTME: Tests the item response probability model and Fisher information.
# ABOUTME: Sweeps seeded random parameters to check bounds and monotonicity in theta.

import math

import numpy as np
import pytest

from src.common.schemas import ItemParameter
from src.irt.model import (
    difficulty_to_unit,
    fisher_information,
    log_likelihood,
    priority_to_difficulty,
    probability,
)


def test_probability_at_difficulty_is_midpoint_without_guessing():
    assert probability(0.5, a=1.3, b=0.5, c=0.0) == pytest.approx(0.5)


def test_probability_lower_asymptote_is_guessing_parameter():
    assert probability(-50.0, a=2.0, b=0.0, c=0.2) == pytest.approx(0.2, abs=1e-9)
    assert probability(50.0, a=2.0, b=0.0, c=0.2) == pytest.approx(1.0, abs=1e-9)


def test_probability_bounded_and_monotone_in_theta():
    rng = np.random.default_rng(7)
    thetas = np.linspace(-4, 4, 81)
    for _ in range(200):
        a = rng.uniform(0.01, 3.0)
        b = rng.uniform(-3, 3)
        c = rng.uniform(0, 0.25)
        p = probability(thetas, a, b, c)
        assert np.all(p >= 0.0) and np.all(p <= 1.0)
        assert np.all(np.diff(p) >= 0.0)


def test_probability_stays_finite_for_extreme_inputs():
    p = probability(np.array([-1e6, 1e6]), a=50.0, b=0.0, c=0.0)
    assert np.all(np.isfinite(p))


def test_fisher_information_peaks_near_difficulty_for_2pl():
    item = ItemParameter(id="i1", a=1.5, b=0.8, c=0.0)
    at_b = fisher_information(0.8, item)
    assert at_b == pytest.approx(1.5**2 * 0.25)
    assert at_b > fisher_information(-1.0, item)
    assert at_b > fisher_information(2.5, item)


def test_fisher_information_zero_for_non_discriminating_item():
    assert fisher_information(0.0, ItemParameter(id="flat", a=0.0, b=0.0)) == 0.0


def test_log_likelihood_is_finite_for_saturated_probabilities():
    a = np.array([5.0])
    b = np.array([-3.0])
    c = np.array([0.0])
    u = np.array([0.0])
    ll = log_likelihood(3.0, a, b, c, u)
    assert math.isfinite(ll)


def test_priority_difficulty_mapping_round_trips_endpoints():
    assert priority_to_difficulty(0.0) == -3.0
    assert priority_to_difficulty(1.0) == 3.0
    assert difficulty_to_unit(0.0) == pytest.approx(0.5)
