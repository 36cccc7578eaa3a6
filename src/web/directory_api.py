"""
Directory API

Identity-only endpoints for clients and staff. Profile editing lives in
other services; the care-team engine only needs names, ids and whether a
staff member is active.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from domain.aggregates import ClientSummary, StaffMember
from services.care_team import CareTeamService

from web.dependencies import Actor, get_care_team_service, require_actor

router = APIRouter(tags=["Directory"])


class NameRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: Optional[str] = None


@router.post("/clients", response_model=ClientSummary, status_code=status.HTTP_201_CREATED)
async def register_client(
    body: NameRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    return await service.register_client(body.name, actor=actor.id)


@router.get("/clients/{client_id}", response_model=ClientSummary)
async def get_client(
    client_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.get_client(client_id)


@router.post("/staff", response_model=StaffMember, status_code=status.HTTP_201_CREATED)
async def register_staff(
    body: NameRequest,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    return await service.register_staff(body.name, actor=actor.id)


@router.get("/staff/{staff_id}", response_model=StaffMember)
async def get_staff(
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
):
    return await service.get_staff(staff_id)


@router.post("/staff/{staff_id}/deactivate", response_model=StaffMember)
async def deactivate_staff(
    staff_id: UUID,
    service: CareTeamService = Depends(get_care_team_service),
    actor: Actor = Depends(require_actor),
):
    """New preferences and assignments for an inactive staff member are refused."""
    return await service.deactivate_staff(staff_id, actor=actor.id)
