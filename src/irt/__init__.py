# ABOUTME: Exposes the IRT ability estimator entrypoints.
# ABOUTME: Groups the response model, estimators, item selection, calibration, and theta updates.

from .model import fisher_information, probability, priority_to_difficulty, difficulty_to_unit
from .estimation import EstimationResult, estimate_ability, estimate_theta_eap, estimate_theta_mle
from .selection import select_item_kl, select_next_item
from .calibration import CalibrationResult, build_response_matrix, calibrate_items
from .theta import SessionMode, apply_theta_rules, theta_contribution, update_theta_state

__all__ = [
    "fisher_information",
    "probability",
    "priority_to_difficulty",
    "difficulty_to_unit",
    "EstimationResult",
    "estimate_ability",
    "estimate_theta_eap",
    "estimate_theta_mle",
    "select_item_kl",
    "select_next_item",
    "CalibrationResult",
    "build_response_matrix",
    "calibrate_items",
    "SessionMode",
    "apply_theta_rules",
    "theta_contribution",
    "update_theta_state",
]
