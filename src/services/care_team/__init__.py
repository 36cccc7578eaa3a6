"""Care-team engine: registries, eligibility and the orchestrating service."""

from .assignments import AssignmentRegistry
from .preferences import PreferenceRegistry
from .restrictions import RestrictionRegistry
from .eligibility import EligibilityEvaluator, signal_for, verdict_for, rank_results
from .service import CareTeamService

__all__ = [
    "AssignmentRegistry",
    "PreferenceRegistry",
    "RestrictionRegistry",
    "EligibilityEvaluator",
    "signal_for",
    "verdict_for",
    "rank_results",
    "CareTeamService",
]
