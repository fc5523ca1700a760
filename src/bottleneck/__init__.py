# ABOUTME: Exposes bottleneck detection and cascade analysis entrypoints.
# ABOUTME: Groups error-rate flags, co-occurrence, root-cause analysis, and remediation plans.

from .detection import (
    detect_bottlenecks,
    normalize_history,
    primary_bottleneck,
    records_to_frame,
    results_to_frame,
    window_history,
)
from .cascade import (
    BottleneckAnalysis,
    CascadeAnalysis,
    CooccurrencePair,
    RemediationItem,
    TASK_TYPES,
    analyze_bottleneck,
    analyze_cascade,
    build_remediation_plan,
    find_cooccurring_errors,
    summarize_bottleneck,
)

__all__ = [
    "detect_bottlenecks",
    "normalize_history",
    "primary_bottleneck",
    "records_to_frame",
    "results_to_frame",
    "window_history",
    "BottleneckAnalysis",
    "CascadeAnalysis",
    "CooccurrencePair",
    "RemediationItem",
    "TASK_TYPES",
    "analyze_bottleneck",
    "analyze_cascade",
    "build_remediation_plan",
    "find_cooccurring_errors",
    "summarize_bottleneck",
]
