"""
Domain error taxonomy for the care-team engine.

Every core operation either returns a typed result or raises one of these.
The web layer maps each kind to an HTTP status and error code; nothing in
the core swallows or downgrades them.
"""

from typing import Any, Dict, Optional


class CareTeamError(Exception):
    """Base class for all care-team domain errors."""

    code = "CARE_TEAM_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(CareTeamError):
    """Malformed input: bad enum value, empty required reason, end before start."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.field = field
        super().__init__(message, details)


class ConflictError(CareTeamError):
    """
    A write would break preferred/restricted mutual exclusion, or a concurrent
    write on the same scope won the race. Safe to retry after re-reading state.
    """

    code = "RESOURCE_CONFLICT"


class NotFoundError(CareTeamError):
    """Operation on an id that does not exist."""

    code = "RESOURCE_NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            {"entity": entity, "id": str(entity_id)},
        )


class ArchivedClientError(ValidationError):
    """
    Mutation attempted against an archived (frozen) client.

    A validation failure with its own code so the web layer can answer 403.
    """

    code = "CLIENT_ARCHIVED"

    def __init__(self, client_id: Any):
        self.client_id = client_id
        super().__init__(
            f"Client {client_id} is archived and cannot be modified",
            field="clientId",
            details={"client_id": str(client_id)},
        )


class StaleWriteError(Exception):
    """
    Raised inside a unit of work when an optimistic guard lost a race.

    Never leaves the service layer: it is retried and, once attempts run out,
    converted into ConflictError.
    """


class ImmutableRecordError(Exception):
    """Raised by the ORM layer when an append-only row is updated or deleted."""
