# ABOUTME: Derives processability prerequisite boosts from per-component automation levels.
# ABOUTME: Components that lag behind block every component after them in the cascade order.

from __future__ import annotations

from typing import Dict, Iterable, Mapping, Optional, Sequence

from src.common.config import PrerequisiteConfig
from src.common.schemas import CASCADE_ORDER, ComponentCode, MasteryState, clamp_unit

from .scoring import combined_mastery


def component_automation(states: Iterable[MasteryState]) -> float:
    """Mean combined mastery over a component's items; 0 when the learner has none."""

    values = [combined_mastery(s.stage, s.cue_free_accuracy) for s in states]
    if not values:
        return 0.0
    return sum(values) / len(values)


def automation_gaps(
    mastery_by_component: Mapping[ComponentCode, Sequence[MasteryState]],
    config: Optional[PrerequisiteConfig] = None,
) -> Dict[ComponentCode, float]:
    """Distance of each component below the automation threshold (0 once reached)."""

    config = config or PrerequisiteConfig()
    gaps: Dict[ComponentCode, float] = {}
    for component in CASCADE_ORDER:
        level = component_automation(mastery_by_component.get(component, ()))
        gaps[component] = max(0.0, config.automation_threshold - level)
    return gaps


def blocking_components(
    mastery_by_component: Mapping[ComponentCode, Sequence[MasteryState]],
    target: Optional[ComponentCode] = None,
    config: Optional[PrerequisiteConfig] = None,
) -> Dict[ComponentCode, float]:
    """
    Components whose automation gap blocks later components.

    With a target, only components upstream of it are considered; otherwise
    every component with something after it in the cascade order. Only
    components the learner has items in can block, and only when some later
    component has items too.
    """

    gaps = automation_gaps(mastery_by_component, config)
    populated = {c for c, states in mastery_by_component.items() if len(states)}
    candidates = target.upstream() if target is not None else CASCADE_ORDER[:-1]
    blocking: Dict[ComponentCode, float] = {}
    for component in candidates:
        if component not in populated or gaps[component] <= 0.0:
            continue
        if not any(later in populated for later in component.downstream()):
            continue
        blocking[component] = gaps[component]
    return blocking


def prerequisite_boost(
    component: ComponentCode,
    blocking: Mapping[ComponentCode, float],
    config: Optional[PrerequisiteConfig] = None,
) -> float:
    """min(1, gap_scale * automation gap) for items of a blocking component, else 0."""

    config = config or PrerequisiteConfig()
    gap = blocking.get(ComponentCode.from_code(component))
    if gap is None:
        return 0.0
    return clamp_unit(config.gap_scale * gap)
