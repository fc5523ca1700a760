# ABOUTME: Picks the next most informative item for a learner from a candidate pool.
# ABOUTME: Supports maximum Fisher information and Kullback-Leibler information selection.

from __future__ import annotations

from typing import Collection, Iterable, List, Optional, Sequence

import numpy as np

from src.common.config import IrtConfig
from src.common.schemas import ItemParameter, clamp_theta

from .model import PROBABILITY_EPSILON, fisher_information, item_probability

TIE_TOLERANCE = 1e-12


def _available(candidates: Iterable[ItemParameter], used: Collection[str]) -> List[ItemParameter]:
    used_ids = set(used or ())
    return [item.clamped() for item in candidates if item.id not in used_ids]


def _pick(scored: Sequence[tuple], theta: float) -> Optional[ItemParameter]:
    if not scored:
        return None
    best_value = max(value for value, _ in scored)
    tied = [item for value, item in scored if best_value - value <= TIE_TOLERANCE]
    # Tie-break: closest difficulty to theta, then id for a stable order.
    tied.sort(key=lambda item: (abs(item.b - theta), item.id))
    return tied[0]


def select_next_item(
    theta: float,
    candidates: Iterable[ItemParameter],
    used: Collection[str] = (),
) -> Optional[ItemParameter]:
    """
    Return the unused candidate with maximum Fisher information at theta.

    Ties are broken by lowest |b - theta|, then by item id. Returns None when
    every candidate has been used.
    """

    theta = clamp_theta(theta)
    scored = [(fisher_information(theta, item), item) for item in _available(candidates, used)]
    return _pick(scored, theta)


def kl_information(theta: float, item: ItemParameter, delta: float = 0.1, n_points: int = 11) -> float:
    """
    Kullback-Leibler information integrated over [theta - delta, theta + delta].

    Measures how well the item separates theta from nearby abilities, which is
    more robust than point Fisher information while theta is still uncertain.
    """

    p0 = float(np.clip(item_probability(theta, item), PROBABILITY_EPSILON, 1.0 - PROBABILITY_EPSILON))
    grid = np.linspace(theta - delta, theta + delta, n_points)
    p = np.clip(np.asarray(item_probability(grid, item), dtype=float), PROBABILITY_EPSILON, 1.0 - PROBABILITY_EPSILON)
    kl = p0 * np.log(p0 / p) + (1.0 - p0) * np.log((1.0 - p0) / (1.0 - p))
    return float(np.mean(kl) * 2.0 * delta)


def select_item_kl(
    theta: float,
    candidates: Iterable[ItemParameter],
    used: Collection[str] = (),
    delta: Optional[float] = None,
    config: Optional[IrtConfig] = None,
) -> Optional[ItemParameter]:
    """Same contract as select_next_item, scored by KL information over theta +/- delta (default config.kl_delta)."""

    if delta is None:
        delta = (config or IrtConfig()).kl_delta
    theta = clamp_theta(theta)
    scored = [(kl_information(theta, item, delta), item) for item in _available(candidates, used)]
    return _pick(scored, theta)


def rank_by_information(theta: float, candidates: Iterable[ItemParameter], used: Collection[str] = ()) -> List[ItemParameter]:
    """Full ordering behind select_next_item, most informative first."""

    theta = clamp_theta(theta)
    items = _available(candidates, used)
    return sorted(items, key=lambda item: (-fisher_information(theta, item), abs(item.b - theta), item.id))
