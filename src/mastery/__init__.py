# ABOUTME: Exposes the mastery state machine and the encounter pipeline.
# ABOUTME: Groups accuracy updates, stage transitions, and cue-level recommendations.

from .state_machine import (
    MasteryStage,
    StageTransition,
    apply_response,
    evaluate_transition,
    recommend_cue_level,
    scaffolding_gap,
    update_accuracy,
)
from .encounter import EncounterOutcome, process_encounter

__all__ = [
    "MasteryStage",
    "StageTransition",
    "apply_response",
    "evaluate_transition",
    "recommend_cue_level",
    "scaffolding_gap",
    "update_accuracy",
    "EncounterOutcome",
    "process_encounter",
]
