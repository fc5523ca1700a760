# ABOUTME: Implements the five-stage mastery state machine for a learner-item pair.
# ABOUTME: Updates cue-free/cue-assisted accuracy streams and evaluates promotion or demotion.

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Optional, Tuple

from loguru import logger

from src.common.config import MasteryConfig
from src.common.schemas import MAX_STAGE, MIN_STAGE, MasteryState, clamp, clamp_unit


class MasteryStage(IntEnum):
    UNKNOWN = 0
    RECOGNIZED = 1
    RECALL = 2
    CONTROLLED = 3
    AUTOMATIC = 4


REASON_PROMOTED = "promoted"
REASON_DEMOTED = "demoted"
REASON_GAP_VETO = "gap_veto"
REASON_NONE = "none"


@dataclass(frozen=True)
class StageTransition:
    previous: MasteryStage
    new: MasteryStage
    changed: bool
    reason: str


def scaffolding_gap(state: MasteryState) -> float:
    """Cue-assisted minus cue-free accuracy, never negative."""

    return state.scaffolding_gap


def _stage(state: MasteryState) -> MasteryStage:
    return MasteryStage(int(clamp(float(state.stage), MIN_STAGE, MAX_STAGE)))


def update_accuracy(
    state: MasteryState,
    correct: bool,
    cue_level: int = 0,
    config: Optional[MasteryConfig] = None,
) -> MasteryState:
    """
    Fold one response into the matching accuracy stream.

    cue_level 0 updates cue-free accuracy, anything higher updates cue-assisted
    accuracy; the other stream is untouched. Exposure count always increments.
    """

    config = config or MasteryConfig()
    alpha = config.ema_alpha
    result = 1.0 if correct else 0.0
    if cue_level and cue_level > 0:
        assisted = alpha * result + (1.0 - alpha) * clamp_unit(state.cue_assisted_accuracy)
        return replace(
            state,
            cue_assisted_accuracy=clamp_unit(assisted),
            exposure_count=max(0, state.exposure_count) + 1,
        )
    free = alpha * result + (1.0 - alpha) * clamp_unit(state.cue_free_accuracy)
    return replace(
        state,
        cue_free_accuracy=clamp_unit(free),
        exposure_count=max(0, state.exposure_count) + 1,
    )


def evaluate_transition(state: MasteryState, config: Optional[MasteryConfig] = None) -> StageTransition:
    """
    Decide the stage change implied by the current accuracies.

    Promotion from stage 3 to 4 additionally requires the scaffolding gap to be
    at or below the veto threshold. Stage 4 can only be demoted; stage 0 can
    only be promoted.
    """

    config = config or MasteryConfig()
    stage = _stage(state)
    accuracy = clamp_unit(state.cue_free_accuracy)

    if stage < MasteryStage.AUTOMATIC and accuracy >= config.promote_thresholds[stage]:
        if stage == MasteryStage.CONTROLLED and state.scaffolding_gap > config.automatic_gap_veto:
            return StageTransition(previous=stage, new=stage, changed=False, reason=REASON_GAP_VETO)
        return StageTransition(previous=stage, new=MasteryStage(stage + 1), changed=True, reason=REASON_PROMOTED)

    if stage > MasteryStage.UNKNOWN and accuracy < config.demote_thresholds[stage]:
        return StageTransition(previous=stage, new=MasteryStage(stage - 1), changed=True, reason=REASON_DEMOTED)

    return StageTransition(previous=stage, new=stage, changed=False, reason=REASON_NONE)


def apply_response(
    state: MasteryState,
    correct: bool,
    cue_level: int = 0,
    config: Optional[MasteryConfig] = None,
) -> Tuple[MasteryState, StageTransition]:
    """EMA update followed by a transition check; returns the new state and the transition taken."""

    updated = update_accuracy(state.normalized(), correct, cue_level, config)
    transition = evaluate_transition(updated, config)
    if transition.changed:
        logger.info(
            f"Mastery stage {transition.reason}: {transition.previous.name} -> {transition.new.name} "
            f"(cue_free={updated.cue_free_accuracy:.3f}, gap={updated.scaffolding_gap:.3f})"
        )
        updated = replace(updated, stage=int(transition.new))
    elif transition.reason == REASON_GAP_VETO:
        logger.debug(f"Promotion to AUTOMATIC vetoed: scaffolding gap {updated.scaffolding_gap:.3f}")
    return updated, transition


def recommend_cue_level(state: MasteryState) -> int:
    """
    Suggest how much scaffolding the next task should carry (0 = none, 3 = full).

    Small gaps with enough exposures earn fewer cues.
    """

    gap = state.scaffolding_gap
    exposures = max(0, state.exposure_count)
    if gap < 0.1 and exposures > 3:
        return 0
    if gap < 0.2 and exposures > 2:
        return 1
    if gap < 0.3:
        return 2
    return 3
