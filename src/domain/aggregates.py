"""
Domain entities for the care-team engine.

Entities are read models built from ORM rows (``from_attributes``) and
serialized with camelCase keys for the HTTP surface. Mutation happens only
through the registries and the orchestrator; these objects are snapshots.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .value_objects import (
    AssignmentType,
    ClientStatus,
    PreferenceLevel,
    RestrictionSeverity,
)


class CareTeamModel(BaseModel):
    """Common configuration for care-team read models."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# DIRECTORY (identity only)
# =============================================================================

class ClientSummary(CareTeamModel):
    """Client identity plus the fields the core reads or owns."""
    id: UUID
    name: str
    status: ClientStatus = ClientStatus.ACTIVE
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    archived_by: Optional[str] = None
    archive_reason: Optional[str] = None
    status_changed_at: Optional[datetime] = None
    status_changed_by: Optional[str] = None
    status_version: int = 0

    @field_validator("status", mode="before")
    @classmethod
    def _unset_status_is_active(cls, value):
        return ClientStatus.default() if value is None else value


class StaffMember(CareTeamModel):
    """Staff identity; only ``is_active`` matters to eligibility."""
    id: UUID
    name: str
    is_active: bool = True


# =============================================================================
# ROSTER ENTITIES
# =============================================================================

class Assignment(CareTeamModel):
    """
    A staff member rostered against a client.

    Active while ``end_date`` is absent or in the future.
    """
    id: UUID
    client_id: UUID
    staff_id: UUID
    assignment_type: AssignmentType
    start_date: datetime
    end_date: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.end_date is None or self.end_date > now


class AssignmentRoster(CareTeamModel):
    """Active assignments for one client."""
    client_id: UUID
    active_assignment_count: int
    assignments: List[Assignment] = Field(default_factory=list)


class Preference(CareTeamModel):
    """Ranked recommendation to roster a staff member for a client."""
    id: UUID
    client_id: UUID
    staff_id: UUID
    level: PreferenceLevel
    notes: Optional[str] = None
    is_active: bool = True
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Restriction(CareTeamModel):
    """Safety or compliance constraint against rostering a staff member."""
    id: UUID
    client_id: UUID
    staff_id: UUID
    reason: str
    severity: RestrictionSeverity
    is_active: bool = True
    effective_from: datetime
    effective_to: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_current(self, now: datetime) -> bool:
        """Active and not past its last day. Counts toward mutual exclusion."""
        return self.is_active and (self.effective_to is None or self.effective_to >= now)

    def is_in_effect(self, now: datetime) -> bool:
        """Current and already started. Only these feed eligibility."""
        return self.is_current(now) and self.effective_from <= now


# =============================================================================
# STATUS HISTORY
# =============================================================================

class StatusLogEntry(CareTeamModel):
    """Immutable record of one accepted status transition."""
    id: UUID
    client_id: UUID
    previous_status: ClientStatus
    new_status: ClientStatus
    reason: Optional[str] = None
    changed_by: str
    changed_by_name: Optional[str] = None
    created_at: datetime
    sequence: int


class StatusTransition(CareTeamModel):
    """Result of a status change."""
    client_id: UUID
    previous_status: ClientStatus
    new_status: ClientStatus
    changed_at: datetime
    log_entry_id: UUID


class ActivityLogEntry(CareTeamModel):
    """Immutable audit row written alongside every accepted mutation."""
    id: UUID
    client_id: Optional[UUID] = None
    action: str
    entity_type: str
    entity_id: str
    actor: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    hash_value: str
