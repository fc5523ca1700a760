# ABOUTME: Makes the shared common package importable across engine components.
# ABOUTME: Re-exports schema types, configuration loaders, and the goal cache.

from .schemas import (
    CASCADE_ORDER,
    BottleneckResult,
    ComponentCode,
    ItemFeatureVector,
    ItemParameter,
    MasteryState,
    ResponseRecord,
    ThetaState,
)
from .config import EngineConfig, DEFAULT_CONFIG, load_engine_config
from .cache import GoalCache

__all__ = [
    "CASCADE_ORDER",
    "BottleneckResult",
    "ComponentCode",
    "ItemFeatureVector",
    "ItemParameter",
    "MasteryState",
    "ResponseRecord",
    "ThetaState",
    "EngineConfig",
    "DEFAULT_CONFIG",
    "load_engine_config",
    "GoalCache",
]
