"""
FastAPI Dependency Injection for the care-team service.

Provides dependency injection for:
- The unit-of-work factory (bound to the app's session factory)
- CareTeamService
- The acting user, taken from gateway headers

Usage in endpoints:
    @router.post("/clients/{client_id}/status")
    async def change_status(
        service: CareTeamService = Depends(get_care_team_service),
        actor: Actor = Depends(require_actor),
    ):
        ...
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from config.settings import Settings, get_settings
from database.unit_of_work import UnitOfWorkFactory
from domain.clock import utcnow
from security.api_errors import APIError, ErrorCode
from services.care_team import CareTeamService
from services.logging_config import actor_id_var


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf a request acts."""
    id: str
    name: Optional[str] = None


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_uow_factory(request: Request) -> UnitOfWorkFactory:
    """Unit-of-work factory bound to this app's database."""
    return UnitOfWorkFactory(
        request.app.state.session_factory,
        event_bus=getattr(request.app.state, "event_bus", None),
    )


def get_care_team_service(
    request: Request,
    uow_factory: UnitOfWorkFactory = Depends(get_uow_factory),
) -> CareTeamService:
    """CareTeamService with injected dependencies."""
    return CareTeamService(
        uow_factory,
        clock=getattr(request.app.state, "clock", None) or utcnow,
    )


async def require_actor(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Actor:
    """
    Acting user for mutations.

    Raises:
        APIError: AUTH_REQUIRED when the actor header is missing or blank
    """
    actor_id = (request.headers.get(settings.actor_header) or "").strip()
    if not actor_id:
        raise APIError(
            code=ErrorCode.AUTH_REQUIRED,
            message=f"{settings.actor_header} header is required",
        )
    actor_id_var.set(actor_id)
    name = (request.headers.get(settings.actor_name_header) or "").strip() or None
    return Actor(id=actor_id, name=name)
