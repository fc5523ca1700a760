# ABOUTME: Recalibrates item parameters from a learner-by-item response matrix.
# ABOUTME: Uses joint maximum likelihood, alternating ability and item updates until convergence.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from src.common.config import IrtConfig
from src.common.schemas import MAX_GUESSING, THETA_MAX, THETA_MIN, ItemParameter

MIN_DISCRIMINATION = 0.05
MAX_DISCRIMINATION = 4.0
MAX_STEP = 1.0
RIDGE = 1e-2


@dataclass
class CalibrationResult:
    items: List[ItemParameter]
    calibrated: bool
    iterations: int = 0
    converged: bool = False
    skipped_items: List[str] = field(default_factory=list)
    reason: Optional[str] = None


def build_response_matrix(
    events_df: pd.DataFrame,
    learner_col: str = "user_id",
    item_col: str = "item_id",
    correct_col: str = "correct",
) -> pd.DataFrame:
    """
    Pivot long-format response events into a learner x item matrix.

    Repeated attempts collapse to the learner's latest answer; missing pairs stay NaN.
    """

    if events_df is None or events_df.empty:
        return pd.DataFrame()
    events = events_df[[learner_col, item_col, correct_col]].copy()
    if "timestamp" in events_df.columns:
        events["timestamp"] = events_df["timestamp"]
        events = events.sort_values("timestamp", kind="mergesort")
    events[correct_col] = events[correct_col].astype(float)
    latest = events.groupby([learner_col, item_col], sort=False)[correct_col].last()
    return latest.unstack(item_col)


def _logit(p: np.ndarray) -> np.ndarray:
    return np.log(p / (1.0 - p))


def _probabilities(theta: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray, eps: float) -> Tuple[np.ndarray, np.ndarray]:
    s = 0.5 * (1.0 + np.tanh(0.5 * a[None, :] * (theta[:, None] - b[None, :])))
    p = np.clip(c[None, :] + (1.0 - c[None, :]) * s, eps, 1.0 - eps)
    return p, s


def _update_thetas(theta, a, b, c, u, mask, eps, prior_sd: float = 1.0) -> np.ndarray:
    p, _ = _probabilities(theta, a, b, c, eps)
    dp = a[None, :] * (p - c[None, :]) * (1.0 - p) / (1.0 - c[None, :])
    pq = p * (1.0 - p)
    score = np.sum(mask * (u - p) * dp / pq, axis=1) - theta / prior_sd**2
    info = np.sum(mask * dp * dp / pq, axis=1) + 1.0 / prior_sd**2
    step = np.clip(score / info, -MAX_STEP, MAX_STEP)
    return np.clip(theta + step, THETA_MIN, THETA_MAX)


def _update_items(theta, a, b, c, u, mask, eps) -> Tuple[np.ndarray, np.ndarray]:
    p, s = _probabilities(theta, a, b, c, eps)
    pq = p * (1.0 - p)
    core = (1.0 - c[None, :]) * s * (1.0 - s)
    dp_da = core * (theta[:, None] - b[None, :])
    dp_db = -core * a[None, :]
    w = mask * (u - p) / pq

    grad_a = np.sum(w * dp_da, axis=0)
    grad_b = np.sum(w * dp_db, axis=0)
    i_aa = np.sum(mask * dp_da**2 / pq, axis=0) + RIDGE
    i_bb = np.sum(mask * dp_db**2 / pq, axis=0) + RIDGE
    i_ab = np.sum(mask * dp_da * dp_db / pq, axis=0)

    det = i_aa * i_bb - i_ab**2
    det = np.where(np.abs(det) < 1e-12, 1e-12, det)
    step_a = np.clip((i_bb * grad_a - i_ab * grad_b) / det, -MAX_STEP, MAX_STEP)
    step_b = np.clip((i_aa * grad_b - i_ab * grad_a) / det, -MAX_STEP, MAX_STEP)

    new_a = np.clip(a + step_a, MIN_DISCRIMINATION, MAX_DISCRIMINATION)
    new_b = np.clip(b + step_b, THETA_MIN, THETA_MAX)
    return new_a, new_b


def calibrate_items(
    response_matrix: pd.DataFrame,
    initial: Optional[Mapping[str, ItemParameter]] = None,
    config: Optional[IrtConfig] = None,
) -> CalibrationResult:
    """
    Jointly estimate (a, b) per item, holding each item's guessing parameter fixed.

    Parameters
    ----------
    response_matrix : pd.DataFrame
        Index = learners, columns = item ids, values 1/0 (NaN when unanswered).
    initial : Mapping[str, ItemParameter], optional
        Previous calibration used as starting values and as the source of c.
    config : IrtConfig, optional
        Supplies the per-item response threshold, iteration cap, and tolerance.

    Items with fewer than `min_responses_per_item` answers are skipped. When no
    item qualifies the call is a no-op returning calibrated=False.
    """

    config = config or IrtConfig()
    initial = initial or {}
    if response_matrix is None or response_matrix.empty:
        return CalibrationResult(items=[], calibrated=False, reason="empty response matrix")

    matrix = response_matrix.apply(pd.to_numeric, errors="coerce")
    counts = matrix.notna().sum(axis=0)
    eligible = [col for col in matrix.columns if counts[col] >= config.min_responses_per_item]
    skipped = [str(col) for col in matrix.columns if col not in eligible]
    if not eligible:
        logger.warning(
            f"Calibration skipped: no item has {config.min_responses_per_item} responses "
            f"(max observed {int(counts.max()) if len(counts) else 0})"
        )
        return CalibrationResult(
            items=[],
            calibrated=False,
            skipped_items=skipped,
            reason=f"fewer than {config.min_responses_per_item} responses per item",
        )

    data = matrix[eligible]
    data = data.loc[data.notna().any(axis=1)]
    raw = data.to_numpy(dtype=float)
    mask = (~np.isnan(raw)).astype(float)
    u = np.where(mask > 0, np.clip(raw, 0.0, 1.0), 0.0)
    eps = config.probability_epsilon

    item_ids = [str(col) for col in eligible]
    item_p = np.clip(np.nanmean(raw, axis=0), 0.02, 0.98)
    learner_p = np.clip(np.nanmean(raw, axis=1), 0.02, 0.98)

    a = np.array([initial[i].clamped().a if i in initial else 1.0 for i in item_ids], dtype=float)
    a = np.clip(a, MIN_DISCRIMINATION, MAX_DISCRIMINATION)
    b = np.array(
        [initial[i].clamped().b if i in initial else float(-_logit(p)) for i, p in zip(item_ids, item_p)],
        dtype=float,
    )
    b = np.clip(b, THETA_MIN, THETA_MAX)
    c = np.array([initial[i].clamped().c if i in initial else 0.0 for i in item_ids], dtype=float)
    c = np.clip(c, 0.0, MAX_GUESSING)
    theta = np.clip(_logit(learner_p), THETA_MIN, THETA_MAX)

    converged = False
    iterations = 0
    for iterations in range(1, config.calibration_max_iterations + 1):
        theta = _update_thetas(theta, a, b, c, u, mask, eps)
        # Fix the latent scale: abilities standardized to mean 0, sd 1.
        spread = theta.std()
        theta = theta - theta.mean()
        if spread > 1e-9:
            theta = np.clip(theta / spread, THETA_MIN, THETA_MAX)

        new_a, new_b = _update_items(theta, a, b, c, u, mask, eps)
        change = float(max(np.abs(new_a - a).max(), np.abs(new_b - b).max()))
        a, b = new_a, new_b
        logger.debug(f"calibration iteration={iterations} max_change={change:.5f}")
        if change < config.calibration_epsilon:
            converged = True
            break

    items = [ItemParameter(id=item_id, a=float(ai), b=float(bi), c=float(ci)) for item_id, ai, bi, ci in zip(item_ids, a, b, c)]
    logger.info(
        f"Calibrated {len(items)} items from {raw.shape[0]} learners "
        f"(iterations={iterations}, converged={converged}, skipped={len(skipped)})"
    )
    return CalibrationResult(
        items=items,
        calibrated=True,
        iterations=iterations,
        converged=converged,
        skipped_items=skipped,
    )
