# ABOUTME: Updates the global and per-component ability vector after scored encounters.
# ABOUTME: Applies session-mode weighting rules and EAP re-estimation per component.

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from src.common.config import IrtConfig
from src.common.schemas import ComponentCode, ItemParameter, ThetaState, clamp_theta

from .estimation import EstimationResult, estimate_ability

CONTRIBUTION_SCALE = 0.1
GLOBAL_SHARE = 0.5


class SessionMode(str, Enum):
    LEARNING = "learning"
    TRAINING = "training"
    EVALUATION = "evaluation"


SESSION_WEIGHTS = {
    SessionMode.LEARNING: 0.0,
    SessionMode.TRAINING: 0.5,
    SessionMode.EVALUATION: 1.0,
}


@dataclass(frozen=True)
class ThetaContribution:
    component: ComponentCode
    component_delta: float
    global_delta: float


def theta_contribution(correct: bool, item: ItemParameter, component: ComponentCode) -> ThetaContribution:
    """
    Signed ability nudge from one response.

    Magnitude is 0.1 * a * (1 - |b| / 3): discriminating items move theta more,
    extreme items less. Half of the component nudge is applied to global theta.
    """

    clean = item.clamped()
    magnitude = CONTRIBUTION_SCALE * clean.a * (1.0 - abs(clean.b) / 3.0)
    delta = magnitude if correct else -magnitude
    return ThetaContribution(component=component, component_delta=delta, global_delta=delta * GLOBAL_SHARE)


def apply_theta_rules(theta: ThetaState, contribution: ThetaContribution, mode: SessionMode) -> ThetaState:
    """Learning sessions freeze theta; training counts half; evaluation counts fully."""

    weight = SESSION_WEIGHTS[SessionMode(mode)]
    if weight == 0.0:
        return theta
    current = theta.for_component(contribution.component)
    updated = theta.with_component(contribution.component, current + contribution.component_delta * weight)
    return updated.with_component(None, theta.global_theta + contribution.global_delta * weight)


def update_theta_state(
    theta: ThetaState,
    responses: Sequence[Tuple[ItemParameter, bool]],
    component: Optional[ComponentCode] = None,
    method: Optional[str] = None,
    config: Optional[IrtConfig] = None,
) -> Tuple[ThetaState, EstimationResult]:
    """
    Re-estimate one slot of the ability vector (global when component is None)
    using the current value as the prior. Empty input leaves theta unchanged.
    """

    prior = theta.for_component(component)
    result = estimate_ability(responses, prior_theta=prior, method=method, config=config)
    if not responses:
        return theta, result
    return theta.with_component(component, clamp_theta(result.theta)), result
