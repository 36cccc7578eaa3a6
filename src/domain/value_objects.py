"""
Domain Value Objects for the care-team engine.

Value objects are immutable and defined entirely by their attributes: the
enumerations the engine validates against, the tagged care-team signal the
eligibility evaluator consumes, and the verdict it produces.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Type, TypeVar, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .exceptions import ValidationError


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value, field: str) -> E:
    """
    Coerce a raw value into ``enum_cls``.

    Raises:
        ValidationError: if the value is not one of the enum's values.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field}: {value!r}. Expected one of: {allowed}",
            field=field,
        )


# =============================================================================
# ENUMERATIONS
# =============================================================================

class AssignmentType(str, Enum):
    """Role a staff member plays on a client's roster."""
    PRIMARY_SUPPORT = "primary_support"
    SECONDARY_SUPPORT = "secondary_support"
    CARE_MANAGER = "care_manager"
    CLINICAL_NURSE = "clinical_nurse"


class PreferenceLevel(str, Enum):
    """Ranked desirability: primary > secondary > backup."""
    PRIMARY = "primary"
    SECONDARY = "secondary"
    BACKUP = "backup"

    @property
    def rank(self) -> int:
        """Lower is better."""
        return _PREFERENCE_RANK[self]


_PREFERENCE_RANK = {
    PreferenceLevel.PRIMARY: 0,
    PreferenceLevel.SECONDARY: 1,
    PreferenceLevel.BACKUP: 2,
}


class RestrictionSeverity(str, Enum):
    """Graded strength: warning < soft_block < hard_block."""
    WARNING = "warning"
    SOFT_BLOCK = "soft_block"
    HARD_BLOCK = "hard_block"

    @property
    def weight(self) -> int:
        """Higher dominates."""
        return _SEVERITY_WEIGHT[self]


_SEVERITY_WEIGHT = {
    RestrictionSeverity.WARNING: 1,
    RestrictionSeverity.SOFT_BLOCK: 2,
    RestrictionSeverity.HARD_BLOCK: 3,
}


class ClientStatus(str, Enum):
    """Operational status of a client. Any state may move to any other."""
    ACTIVE = "Active"
    HOSPITAL = "Hospital"
    PAUSED = "Paused"
    DISCHARGED = "Discharged"

    @classmethod
    def default(cls) -> "ClientStatus":
        return cls.ACTIVE


class Verdict(str, Enum):
    """Eligibility verdict for a proposed (client, staff) pairing."""
    BLOCKED = "BLOCKED"
    REQUIRES_OVERRIDE = "REQUIRES_OVERRIDE"
    ALLOWED_WITH_WARNING = "ALLOWED_WITH_WARNING"
    PREFERRED = "PREFERRED"
    NEUTRAL = "NEUTRAL"


# Candidate ordering when a caller compares several staff for one client.
VERDICT_ORDER = {
    Verdict.PREFERRED: 0,
    Verdict.NEUTRAL: 1,
    Verdict.ALLOWED_WITH_WARNING: 2,
    Verdict.REQUIRES_OVERRIDE: 3,
    Verdict.BLOCKED: 4,
}

SEVERITY_VERDICT = {
    RestrictionSeverity.HARD_BLOCK: Verdict.BLOCKED,
    RestrictionSeverity.SOFT_BLOCK: Verdict.REQUIRES_OVERRIDE,
    RestrictionSeverity.WARNING: Verdict.ALLOWED_WITH_WARNING,
}


# =============================================================================
# CARE-TEAM SIGNAL (tagged variant)
# =============================================================================

@dataclass(frozen=True)
class PreferenceSignal:
    """The pair carries an active preference."""
    level: PreferenceLevel
    preference_id: Optional[UUID] = None


@dataclass(frozen=True)
class RestrictionSignal:
    """The pair carries a restriction currently in effect."""
    severity: RestrictionSeverity
    reason: str
    restriction_id: Optional[UUID] = None


@dataclass(frozen=True)
class NoSignal:
    """Nothing recorded either way."""


CareTeamSignal = Union[PreferenceSignal, RestrictionSignal, NoSignal]


# =============================================================================
# ELIGIBILITY RESULT
# =============================================================================

class EligibilityResult(BaseModel):
    """
    Verdict for a candidate pairing.

    ``severity`` and ``reason`` are present for restriction verdicts,
    ``level`` for PREFERRED. A REQUIRES_OVERRIDE verdict obliges the caller to
    record an explicit override (with its own reason) wherever the roster
    decision is finally persisted.
    """

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    client_id: UUID
    staff_id: UUID
    verdict: Verdict
    severity: Optional[RestrictionSeverity] = None
    reason: Optional[str] = None
    level: Optional[PreferenceLevel] = None
    restriction_id: Optional[UUID] = Field(default=None)
    preference_id: Optional[UUID] = Field(default=None)

    @property
    def requires_override(self) -> bool:
        return self.verdict == Verdict.REQUIRES_OVERRIDE

    @property
    def is_blocked(self) -> bool:
        return self.verdict == Verdict.BLOCKED

    def sort_key(self) -> tuple:
        """Key for ranking candidates; lower sorts first."""
        level_rank = self.level.rank if self.level is not None else 0
        return (VERDICT_ORDER[self.verdict], level_rank)
