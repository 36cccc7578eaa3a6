"""Repository implementations for the care-team engine."""

from .client_repository import ClientRepository
from .staff_repository import StaffRepository
from .assignment_repository import AssignmentRepository
from .preference_repository import PreferenceRepository
from .restriction_repository import RestrictionRepository
from .pair_guard_repository import PairGuardRepository
from .status_log_repository import StatusLogRepository
from .activity_log_repository import ActivityLogRepository

__all__ = [
    "ClientRepository",
    "StaffRepository",
    "AssignmentRepository",
    "PreferenceRepository",
    "RestrictionRepository",
    "PairGuardRepository",
    "StatusLogRepository",
    "ActivityLogRepository",
]
