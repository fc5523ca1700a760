# ABOUTME: Holds the tunable thresholds, weights, and caps for every engine component.
# ABOUTME: Loads overrides from a YAML config file into frozen dataclasses.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

import yaml


@dataclass(frozen=True)
class IrtConfig:
    """Ability estimation and calibration settings."""

    max_iterations: int = 50
    convergence_epsilon: float = 1e-4
    quadrature_nodes: int = 20
    prior_mean: float = 0.0
    prior_sd: float = 1.0
    probability_epsilon: float = 1e-6
    default_method: str = "eap"
    min_responses_per_item: int = 10
    calibration_max_iterations: int = 50
    calibration_epsilon: float = 1e-3
    kl_delta: float = 0.1


@dataclass(frozen=True)
class FsrsConfig:
    """Memory scheduler settings; thresholds are in milliseconds and days."""

    slow_response_ms: int = 10_000
    fast_response_ms: int = 5_000
    again_difficulty_delta: float = 0.2
    easy_difficulty_delta: float = -0.1
    min_difficulty: float = 1.0
    max_difficulty: float = 10.0
    lapse_factor: float = 0.2
    stability_floor: float = 0.1
    hard_growth: float = 1.5
    good_growth: float = 2.0
    easy_growth: float = 2.5
    growth_constant: float = 0.5
    min_interval_days: float = 1.0
    max_interval_days: float = 36_500.0


@dataclass(frozen=True)
class MasteryConfig:
    """Stage thresholds indexed by stage (0..4) and EMA smoothing."""

    ema_alpha: float = 0.2
    promote_thresholds: Tuple[float, ...] = (0.5, 0.6, 0.75, 0.9)
    demote_thresholds: Tuple[float, ...] = (0.0, 0.3, 0.4, 0.6, 0.8)
    automatic_gap_veto: float = 0.15

    def __post_init__(self) -> None:
        if len(self.promote_thresholds) != 4:
            raise ValueError("promote_thresholds needs one entry per stage 0-3")
        if len(self.demote_thresholds) != 5:
            raise ValueError("demote_thresholds needs one entry per stage 0-4")
        if not 0.0 < self.ema_alpha <= 1.0:
            raise ValueError("ema_alpha must be in (0, 1]")


@dataclass(frozen=True)
class PriorityWeights:
    """
    Canonical 7-dimension weight table plus the four boost weights.

    Linguistic dimensions sum to 0.60, scheduling boosts (urgency, bottleneck)
    to 0.20, and processability/generalization boosts to 0.20.
    """

    frequency: float = 0.14
    relational: float = 0.10
    domain: float = 0.10
    morphological: float = 0.06
    phonological: float = 0.06
    syntactic: float = 0.07
    pragmatic: float = 0.07
    urgency: float = 0.14
    bottleneck: float = 0.06
    prerequisite: float = 0.12
    coverage_gap: float = 0.08
    gap_multiplier: float = 0.5

    @property
    def linguistic_total(self) -> float:
        return (
            self.frequency
            + self.relational
            + self.domain
            + self.morphological
            + self.phonological
            + self.syntactic
            + self.pragmatic
        )


@dataclass(frozen=True)
class UrgencyConfig:
    new_item_urgency: float = 1.0
    due_baseline: float = 0.5
    overdue_ramp_hours: float = 48.0
    horizon_hours: float = 168.0
    min_urgency: float = 0.1


@dataclass(frozen=True)
class PrerequisiteConfig:
    automation_threshold: float = 0.7
    gap_scale: float = 2.0


@dataclass(frozen=True)
class BottleneckConfig:
    window_days: float = 14.0
    recent_days: float = 7.0
    error_rate_threshold: float = 0.30
    trend_threshold: float = 0.5
    min_events: int = 10
    min_component_events: int = 5
    min_trend_errors: int = 3
    downstream_ratio: float = 0.67
    min_cooccurrence: int = 2
    cascade_confidence: float = 0.7


@dataclass(frozen=True)
class EngineConfig:
    irt: IrtConfig = field(default_factory=IrtConfig)
    fsrs: FsrsConfig = field(default_factory=FsrsConfig)
    mastery: MasteryConfig = field(default_factory=MasteryConfig)
    weights: PriorityWeights = field(default_factory=PriorityWeights)
    urgency: UrgencyConfig = field(default_factory=UrgencyConfig)
    prerequisite: PrerequisiteConfig = field(default_factory=PrerequisiteConfig)
    bottleneck: BottleneckConfig = field(default_factory=BottleneckConfig)


DEFAULT_CONFIG = EngineConfig()

_SECTIONS: Dict[str, Type[Any]] = {
    "irt": IrtConfig,
    "fsrs": FsrsConfig,
    "mastery": MasteryConfig,
    "weights": PriorityWeights,
    "urgency": UrgencyConfig,
    "prerequisite": PrerequisiteConfig,
    "bottleneck": BottleneckConfig,
}

T = TypeVar("T")


def _build_section(section_cls: Type[T], name: str, raw: Optional[Mapping[str, Any]]) -> T:
    if raw is None:
        return section_cls()
    if not isinstance(raw, Mapping):
        raise ValueError(f"Config section '{name}' must be a mapping.")
    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown keys in config section '{name}': {', '.join(unknown)}")
    values = {k: tuple(v) if isinstance(v, list) else v for k, v in raw.items()}
    return section_cls(**values)


def engine_config_from_dict(cfg: Optional[Mapping[str, Any]]) -> EngineConfig:
    """Build an EngineConfig from a parsed mapping; missing sections keep their defaults."""

    cfg = cfg or {}
    unknown = sorted(set(cfg) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(unknown)}")
    return EngineConfig(**{name: _build_section(cls, name, cfg.get(name)) for name, cls in _SECTIONS.items()})


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """Programmatic entrypoint: read a YAML config, or return defaults when no path is given."""

    if config_path is None:
        return DEFAULT_CONFIG
    with open(config_path) as f:
        cfg = yaml.safe_load(f)
    return engine_config_from_dict(cfg)
