# ABOUTME: Implements the 1PL/2PL/3PL item response model and its information functions.
# ABOUTME: All probabilities are clipped away from 0 and 1 before any log is taken.

from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from src.common.schemas import ItemParameter

PROBABILITY_EPSILON = 1e-6


def _sigmoid(x: np.ndarray) -> np.ndarray:
    # tanh form stays finite for large |x|
    return 0.5 * (1.0 + np.tanh(0.5 * x))


def probability(theta, a=1.0, b=0.0, c=0.0):
    """
    P(correct | theta) = c + (1 - c) / (1 + exp(-a (theta - b))).

    Accepts scalars or numpy arrays (broadcast together). Returns a float for
    scalar input.
    """

    theta_arr = np.asarray(theta, dtype=float)
    a_arr = np.maximum(np.asarray(a, dtype=float), 0.0)
    c_arr = np.clip(np.asarray(c, dtype=float), 0.0, 1.0)
    p = c_arr + (1.0 - c_arr) * _sigmoid(a_arr * (theta_arr - np.asarray(b, dtype=float)))
    p = np.clip(p, 0.0, 1.0)
    if np.ndim(p) == 0:
        return float(p)
    return p


def item_probability(theta, item: ItemParameter):
    return probability(theta, item.a, item.b, item.c)


def clipped_probability(theta, a, b, c, epsilon: float = PROBABILITY_EPSILON) -> np.ndarray:
    return np.clip(np.asarray(probability(theta, a, b, c), dtype=float), epsilon, 1.0 - epsilon)


def fisher_information(theta: float, item: ItemParameter) -> float:
    """
    3PL Fisher information: a^2 * ((P - c)^2 / (1 - c)^2) * ((1 - P) / P).

    Reduces to a^2 * P * (1 - P) when c = 0.
    """

    if item.a <= 0 or not 0.0 <= item.c < 1.0:
        return 0.0
    p = float(np.clip(item_probability(theta, item), PROBABILITY_EPSILON, 1.0 - PROBABILITY_EPSILON))
    return float(item.a**2 * ((p - item.c) ** 2 / (1.0 - item.c) ** 2) * ((1.0 - p) / p))


def response_arrays(responses: Iterable[Tuple[ItemParameter, bool]]) -> Tuple[np.ndarray, ...]:
    """Split (item, correct) pairs into clamped a, b, c arrays and a 0/1 response vector."""

    a, b, c, u = [], [], [], []
    for item, correct in responses:
        clean = item.clamped()
        a.append(clean.a)
        b.append(clean.b)
        c.append(clean.c)
        u.append(1.0 if correct else 0.0)
    return (
        np.asarray(a, dtype=float),
        np.asarray(b, dtype=float),
        np.asarray(c, dtype=float),
        np.asarray(u, dtype=float),
    )


def log_likelihood(
    theta,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    u: np.ndarray,
    epsilon: float = PROBABILITY_EPSILON,
):
    """
    Log-likelihood of a response vector. `theta` may be a scalar or a 1-D grid;
    for a grid the result has one entry per grid point.
    """

    theta_arr = np.atleast_1d(np.asarray(theta, dtype=float))[:, None]
    p = clipped_probability(theta_arr, a[None, :], b[None, :], c[None, :], epsilon)
    ll = (u[None, :] * np.log(p) + (1.0 - u[None, :]) * np.log(1.0 - p)).sum(axis=1)
    if np.ndim(theta) == 0:
        return float(ll[0])
    return ll


def score_and_information(
    theta: float,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray,
    u: np.ndarray,
    epsilon: float = PROBABILITY_EPSILON,
) -> Tuple[float, float]:
    """First derivative of the log-likelihood and test information at theta."""

    p = clipped_probability(theta, a, b, c, epsilon)
    dp = a * (p - c) * (1.0 - p) / (1.0 - c)
    pq = p * (1.0 - p)
    score = float(np.sum((u - p) * dp / pq))
    info = float(np.sum(dp * dp / pq))
    return score, info


def priority_to_difficulty(priority: float) -> float:
    """Linear map from priority in [0, 1] onto the logit difficulty scale [-3, 3]."""

    return 6.0 * float(np.clip(priority, 0.0, 1.0)) - 3.0


def difficulty_to_unit(b: float) -> float:
    return float(np.clip((b + 3.0) / 6.0, 0.0, 1.0))
