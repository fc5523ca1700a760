# ABOUTME: Defines canonical data structures shared by every engine component.
# ABOUTME: Centralizes item, theta, mastery, feature, response, and bottleneck schemas.

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from loguru import logger

THETA_MIN = -3.0
THETA_MAX = 3.0
NEUTRAL_FEATURE = 0.5
MAX_GUESSING = 0.25
MIN_STAGE = 0
MAX_STAGE = 4


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]; NaN collapses to lo."""

    if value is None or math.isnan(value):
        return lo
    return max(lo, min(hi, value))


def clamp_unit(value: float) -> float:
    return clamp(value, 0.0, 1.0)


def clamp_theta(value: float) -> float:
    return clamp(value, THETA_MIN, THETA_MAX)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timezone-aware UTC datetime; naive values are taken to be UTC already."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ComponentCode(str, Enum):
    """Linguistic components in cascade order (foundational first)."""

    PHON = "PHON"
    MORPH = "MORPH"
    LEX = "LEX"
    SYNT = "SYNT"
    PRAG = "PRAG"

    @property
    def position(self) -> int:
        return CASCADE_ORDER.index(self)

    def downstream(self) -> Tuple["ComponentCode", ...]:
        return CASCADE_ORDER[self.position + 1 :]

    def upstream(self) -> Tuple["ComponentCode", ...]:
        return CASCADE_ORDER[: self.position]

    def can_cause_errors_in(self, other: "ComponentCode") -> bool:
        return self.position < other.position

    @classmethod
    def from_code(cls, value: object) -> "ComponentCode":
        """Map a raw object-type code onto a component; unknown codes fall back to LEX."""

        if isinstance(value, ComponentCode):
            return value
        normalized = str(value).strip().upper() if value is not None else ""
        if normalized in _TYPE_ALIASES:
            return _TYPE_ALIASES[normalized]
        logger.warning(f"Unknown component code '{value}', defaulting to LEX")
        return cls.LEX


CASCADE_ORDER: Tuple[ComponentCode, ...] = (
    ComponentCode.PHON,
    ComponentCode.MORPH,
    ComponentCode.LEX,
    ComponentCode.SYNT,
    ComponentCode.PRAG,
)

_TYPE_ALIASES: Dict[str, ComponentCode] = {
    "PHON": ComponentCode.PHON,
    "G2P": ComponentCode.PHON,
    "MORPH": ComponentCode.MORPH,
    "LEX": ComponentCode.LEX,
    "SYNT": ComponentCode.SYNT,
    "PRAG": ComponentCode.PRAG,
}

COMPONENT_NAMES: Dict[ComponentCode, str] = {
    ComponentCode.PHON: "Phonology (sounds and pronunciation)",
    ComponentCode.MORPH: "Morphology (word forms and structure)",
    ComponentCode.LEX: "Vocabulary (word meanings)",
    ComponentCode.SYNT: "Syntax (sentence structure)",
    ComponentCode.PRAG: "Pragmatics (context and usage)",
}

COMPONENT_SHORT: Dict[ComponentCode, str] = {
    ComponentCode.PHON: "pronunciation",
    ComponentCode.MORPH: "word forms",
    ComponentCode.LEX: "vocabulary",
    ComponentCode.SYNT: "grammar",
    ComponentCode.PRAG: "usage",
}


def require_exhaustive(table: Mapping[ComponentCode, object], name: str) -> None:
    """Fail at import time when a per-component table misses a component."""

    missing = [code.value for code in ComponentCode if code not in table]
    if missing:
        raise ValueError(f"{name} is missing entries for: {', '.join(missing)}")


require_exhaustive(COMPONENT_NAMES, "COMPONENT_NAMES")
require_exhaustive(COMPONENT_SHORT, "COMPONENT_SHORT")


@dataclass(frozen=True)
class ItemParameter:
    """Calibrated IRT parameters for one item (3PL; c=0 gives 2PL, a=1 and c=0 give 1PL)."""

    id: str
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0

    def clamped(self) -> "ItemParameter":
        return ItemParameter(
            id=self.id,
            a=max(0.0, self.a) if not math.isnan(self.a) else 0.0,
            b=clamp_theta(self.b),
            c=clamp(self.c, 0.0, MAX_GUESSING),
        )


_THETA_FIELDS: Dict[ComponentCode, str] = {
    ComponentCode.PHON: "phonology",
    ComponentCode.MORPH: "morphology",
    ComponentCode.LEX: "lexical",
    ComponentCode.SYNT: "syntactic",
    ComponentCode.PRAG: "pragmatic",
}
require_exhaustive(_THETA_FIELDS, "_THETA_FIELDS")


@dataclass(frozen=True)
class ThetaState:
    """Learner ability: one global scalar plus one scalar per linguistic component."""

    global_theta: float = 0.0
    phonology: float = 0.0
    morphology: float = 0.0
    lexical: float = 0.0
    syntactic: float = 0.0
    pragmatic: float = 0.0

    def for_component(self, component: Optional[ComponentCode]) -> float:
        if component is None:
            return self.global_theta
        return getattr(self, _THETA_FIELDS[component])

    def with_component(self, component: Optional[ComponentCode], value: float) -> "ThetaState":
        if component is None:
            return replace(self, global_theta=clamp_theta(value))
        return replace(self, **{_THETA_FIELDS[component]: clamp_theta(value)})

    def clamped(self) -> "ThetaState":
        return ThetaState(
            global_theta=clamp_theta(self.global_theta),
            phonology=clamp_theta(self.phonology),
            morphology=clamp_theta(self.morphology),
            lexical=clamp_theta(self.lexical),
            syntactic=clamp_theta(self.syntactic),
            pragmatic=clamp_theta(self.pragmatic),
        )


@dataclass(frozen=True)
class MasteryState:
    """Per learner-item mastery record; every update returns a new instance."""

    stage: int = 0
    cue_free_accuracy: float = 0.0
    cue_assisted_accuracy: float = 0.0
    exposure_count: int = 0
    fsrs_difficulty: float = 5.0
    fsrs_stability: float = 0.1
    next_review: Optional[datetime] = None
    last_reviewed_at: Optional[datetime] = None

    @property
    def scaffolding_gap(self) -> float:
        return max(0.0, clamp_unit(self.cue_assisted_accuracy) - clamp_unit(self.cue_free_accuracy))

    @property
    def is_new(self) -> bool:
        return self.next_review is None

    def normalized(self) -> "MasteryState":
        """Bring out-of-range fields back inside their documented bounds."""

        stability = self.fsrs_stability
        if stability is None or math.isnan(stability) or stability <= 0:
            stability = 0.1
        return replace(
            self,
            stage=int(clamp(float(self.stage), MIN_STAGE, MAX_STAGE)),
            cue_free_accuracy=clamp_unit(self.cue_free_accuracy),
            cue_assisted_accuracy=clamp_unit(self.cue_assisted_accuracy),
            exposure_count=max(0, int(self.exposure_count)),
            fsrs_difficulty=clamp(self.fsrs_difficulty, 1.0, 10.0),
            fsrs_stability=stability,
            next_review=to_utc(self.next_review),
            last_reviewed_at=to_utc(self.last_reviewed_at),
        )


@dataclass(frozen=True)
class ResolvedFeatures:
    """Seven static dimensions after neutral defaulting, each in [0, 1]."""

    frequency: float
    relational_density: float
    domain_fit: float
    morphological: float
    phonological: float
    syntactic: float
    pragmatic: float


@dataclass(frozen=True)
class ItemFeatureVector:
    """Static per-item features computed upstream; None means the feature is unavailable."""

    item_id: str
    component: ComponentCode = ComponentCode.LEX
    frequency: Optional[float] = None
    relational_density: Optional[float] = None
    domain_distribution: Optional[Mapping[str, float]] = None
    morphological_score: Optional[float] = None
    phonological_difficulty: Optional[float] = None
    syntactic_complexity: Optional[float] = None
    pragmatic_score: Optional[float] = None

    def resolved(self, target_domain: Optional[str] = None) -> ResolvedFeatures:
        """Single boundary where missing optional features collapse to the neutral default."""

        domain_fit = None
        if target_domain is not None and self.domain_distribution:
            domain_fit = self.domain_distribution.get(target_domain)
        return ResolvedFeatures(
            frequency=_neutral(self.frequency),
            relational_density=_neutral(self.relational_density),
            domain_fit=_neutral(domain_fit),
            morphological=_neutral(self.morphological_score),
            phonological=_neutral(self.phonological_difficulty),
            syntactic=_neutral(self.syntactic_complexity),
            pragmatic=_neutral(self.pragmatic_score),
        )


def _neutral(value: Optional[float]) -> float:
    if value is None:
        return NEUTRAL_FEATURE
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_FEATURE
    if math.isnan(numeric):
        return NEUTRAL_FEATURE
    return clamp_unit(numeric)


@dataclass(frozen=True)
class ResponseRecord:
    """Historical response row owned by the session collaborator."""

    item_id: str
    correct: bool
    timestamp: datetime
    session_id: str
    component: ComponentCode = ComponentCode.LEX
    response_time_ms: Optional[int] = None
    cue_level: int = 0
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BottleneckResult:
    """Per-component error summary; always derivable from response history."""

    component: ComponentCode
    error_rate: float
    trend: float
    is_bottleneck: bool
    total_responses: int = 0
    total_errors: int = 0
    recent_errors: int = 0
