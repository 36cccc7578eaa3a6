"""
Care Team API

REST endpoints for preferences, restrictions, assignments, client status
and eligibility. Bodies and responses use camelCase keys. Every mutation
needs the actor header; reads do not.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from domain.aggregates import (
    ActivityLogEntry,
    Assignment,
    AssignmentRoster,
    ClientSummary,
    Preference,
    Restriction,
    StatusLogEntry,
    StatusTransition,
)
from domain.value_objects import ClientStatus, EligibilityResult
from services.care_team import CareTeamService

from web.dependencies import Actor, get_care_team_service, require_actor

router = APIRouter(tags=["Care Team"])


# =============================================================================
# REQUEST / RESPONSE MODELS
# =============================================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PreferenceRequest(CamelModel):
    """Enum-valued fields are plain strings; the domain validates them."""
    staff_id: UUID
    preference_level: str
    notes: Optional[str] = None


class RestrictionRequest(CamelModel):
    staff_id: UUID
    reason: Optional[str] = None
    severity: str
    effective_from: Optional[datetime] = None
    effective_to: Optional[datetime] = None


class AssignmentRequest(CamelModel):
    staff_id: UUID
    assignment_type: str
    start_date: Optional[datetime] = None


class EndAssignmentRequest(CamelModel):
    end_date: Optional[datetime] = None


class StatusChangeRequest(CamelModel):
    status: str
    reason: Optional[str] = None


class ArchiveRequest(CamelModel):
    reason: Optional[str] = None


class RankRequest(CamelModel):
    staff_ids: List[UUID] = Field(default_factory=list)


class CurrentStatusResponse(CamelModel):
    client_id: UUID
    status: ClientStatus


class IntegrityResponse(CamelModel):
    valid: bool
    tampered_entry_ids: List[str]


# =============================================================================
# PREFERENCES
# =============================================================================

@router.post(
    "/clients/{client_id}/staff-preferences",
    response_model=Preference,
    status_code=status.HTTP_201_CREATED,
)
async def set_preference(
    client_id: UUID,
    body: PreferenceRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    """
    Prefer a staff member for a client.

    409 if the pair is restricted, 422 for an unknown level.
    """
    return await service.set_preference(
        client_id, body.staff_id, body.preference_level, notes=body.notes, actor=actor.id
    )


@router.get("/clients/{client_id}/staff-preferences", response_model=List[Preference])
async def list_preferences(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.list_preferences(client_id)


@router.delete("/staff-preferences/{preference_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_preference(
    preference_id: UUID,
    hard: bool = Query(default=False, description="Delete the row instead of deactivating it"),
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    await service.remove_preference(preference_id, actor=actor.id, hard=hard)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# RESTRICTIONS
# =============================================================================

@router.post(
    "/clients/{client_id}/staff-restrictions",
    response_model=Restriction,
    status_code=status.HTTP_201_CREATED,
)
async def set_restriction(
    client_id: UUID,
    body: RestrictionRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    """
    Restrict a staff member for a client.

    409 if the pair is preferred, 422 for a blank reason or unknown severity.
    """
    return await service.set_restriction(
        client_id,
        body.staff_id,
        body.reason,
        body.severity,
        actor=actor.id,
        effective_from=body.effective_from,
        effective_to=body.effective_to,
    )


@router.get("/clients/{client_id}/staff-restrictions", response_model=List[Restriction])
async def list_restrictions(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.list_restrictions(client_id)


@router.delete("/staff-restrictions/{restriction_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_restriction(
    restriction_id: UUID,
    hard: bool = Query(default=False, description="Delete the row instead of deactivating it"),
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    await service.remove_restriction(restriction_id, actor=actor.id, hard=hard)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# ASSIGNMENTS
# =============================================================================

@router.post(
    "/clients/{client_id}/assignments",
    response_model=Assignment,
    status_code=status.HTTP_201_CREATED,
)
async def add_assignment(
    client_id: UUID,
    body: AssignmentRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    """
    Roster a staff member.

    An archived client answers 403 ``CLIENT_ARCHIVED``. That error is a
    validation failure in the domain, given its own status so callers can
    tell a frozen client from a bad payload.
    """
    return await service.add_assignment(
        client_id, body.staff_id, body.assignment_type, actor=actor.id, start_date=body.start_date
    )


@router.get("/clients/{client_id}/assignments", response_model=AssignmentRoster)
async def list_assignments(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    """Active assignments, oldest start first, with their count."""
    return await service.list_active_assignments(client_id)


@router.post("/assignments/{assignment_id}/end", response_model=Assignment)
async def end_assignment(
    assignment_id: UUID,
    body: EndAssignmentRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    return await service.end_assignment(assignment_id, body.end_date, actor=actor.id)


@router.delete("/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_assignment(
    assignment_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    await service.remove_assignment(assignment_id, actor=actor.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# STAFF VIEWS
# =============================================================================

@router.get("/staff/{staff_id}/preferences", response_model=List[Preference])
async def list_staff_preferences(
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.list_staff_preferences(staff_id)


@router.get("/staff/{staff_id}/restrictions", response_model=List[Restriction])
async def list_staff_restrictions(
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.list_staff_restrictions(staff_id)


@router.get("/staff/{staff_id}/assignments", response_model=List[Assignment])
async def list_staff_assignments(
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.list_staff_assignments(staff_id)


# =============================================================================
# STATUS
# =============================================================================

@router.post("/clients/{client_id}/status", response_model=StatusTransition)
async def change_status(
    client_id: UUID,
    body: StatusChangeRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    """
    Move a client to a new status and append the log entry.

    403 for archived clients, 422 for an unknown status.
    """
    return await service.change_status(
        client_id, body.status, body.reason, changed_by=actor.id, changed_by_name=actor.name
    )


@router.get("/clients/{client_id}/status", response_model=CurrentStatusResponse)
async def current_status(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return CurrentStatusResponse(client_id=client_id, status=await service.current_status(client_id))


@router.get("/clients/{client_id}/status-logs", response_model=List[StatusLogEntry])
async def status_history(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    """Status history, newest first."""
    return await service.history(client_id)


# =============================================================================
# ELIGIBILITY
# =============================================================================

@router.get(
    "/clients/{client_id}/eligibility/{staff_id}",
    response_model=EligibilityResult,
    response_model_exclude_none=True,
)
async def evaluate(
    client_id: UUID,
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.evaluate(client_id, staff_id)


@router.post(
    "/clients/{client_id}/eligibility/rank",
    response_model=List[EligibilityResult],
    response_model_exclude_none=True,
)
async def rank_candidates(
    client_id: UUID,
    body: RankRequest,
    service: CareTeamService = Depends(get_care_team_service),
):
    """Candidates best first; blocked staff sort last."""
    return await service.rank_candidates(client_id, body.staff_ids)


# =============================================================================
# ACTIVITY & ARCHIVAL
# =============================================================================

@router.get("/clients/{client_id}/activity", response_model=List[ActivityLogEntry])
async def activity(
    client_id: UUID,
    limit: int = Query(default=100, ge=1, le=1000),
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.activity(client_id, limit)


@router.get("/clients/{client_id}/activity/verify", response_model=IntegrityResponse)
async def verify_activity(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    """Recompute the hash of every activity row for the client."""
    result = await service.verify_activity(client_id)
    return IntegrityResponse(**result)


@router.post("/clients/{client_id}/archive", response_model=ClientSummary)
async def archive_client(
    client_id: UUID,
    body: ArchiveRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    return await service.archive_client(client_id, body.reason, actor=actor.id)


@router.post("/clients/{client_id}/restore", response_model=ClientSummary)
async def restore_client(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    return await service.restore_client(client_id, actor=actor.id)
