# ABOUTME: Runs one scored encounter through accuracy, stage, and memory-schedule updates.
# ABOUTME: Produces the new mastery record the caller writes back as a single unit.

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

from src.common.config import EngineConfig, DEFAULT_CONFIG
from src.common.schemas import MasteryState, to_utc
from src.fsrs.scheduler import Rating, ScheduleResult, schedule

from .state_machine import MasteryStage, StageTransition, apply_response


@dataclass(frozen=True)
class EncounterOutcome:
    state: MasteryState
    transition: StageTransition
    schedule: ScheduleResult

    @property
    def previous_stage(self) -> MasteryStage:
        return self.transition.previous

    @property
    def new_stage(self) -> MasteryStage:
        return self.transition.new

    @property
    def rating(self) -> Rating:
        return self.schedule.rating


def process_encounter(
    state: MasteryState,
    correct: bool,
    response_time_ms: Optional[float] = None,
    cue_level: int = 0,
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
) -> EncounterOutcome:
    config = config or DEFAULT_CONFIG
    now = to_utc(now) or datetime.now(timezone.utc)

    updated, transition = apply_response(state, correct, cue_level, config.mastery)
    result = schedule(
        correct,
        response_time_ms,
        updated.fsrs_difficulty,
        updated.fsrs_stability,
        now=now,
        config=config.fsrs,
    )
    updated = replace(
        updated,
        fsrs_difficulty=result.difficulty,
        fsrs_stability=result.stability,
        next_review=result.next_review,
        last_reviewed_at=now,
    )
    return EncounterOutcome(state=updated, transition=transition, schedule=result)
