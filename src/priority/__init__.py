# ABOUTME: Exposes the priority scorer, prerequisite boosts, and learning queue builders.
# ABOUTME: Groups everything that turns learner state into a ranked list of items.

from .scoring import (
    ScoreBreakdown,
    base_priority,
    combined_mastery,
    effective_mastery,
    effective_priority,
    mastery_adjustment,
    mastery_function,
    score,
    score_breakdown,
    urgency_score,
)
from .prerequisites import automation_gaps, blocking_components, component_automation, prerequisite_boost
from .queue import (
    QueueAnalysis,
    QueueCandidate,
    QueueEntry,
    analyze_queue,
    build_learning_queue,
    queue_to_frame,
    select_session_items,
)

__all__ = [
    "ScoreBreakdown",
    "base_priority",
    "combined_mastery",
    "effective_mastery",
    "effective_priority",
    "mastery_adjustment",
    "mastery_function",
    "score",
    "score_breakdown",
    "urgency_score",
    "automation_gaps",
    "blocking_components",
    "component_automation",
    "prerequisite_boost",
    "QueueAnalysis",
    "QueueCandidate",
    "QueueEntry",
    "analyze_queue",
    "build_learning_queue",
    "queue_to_frame",
    "select_session_items",
]
