"""
Domain Events for the care-team engine.

Domain events represent something that happened in the domain that
coordinators care about. They are immutable records of past occurrences,
published only after the unit of work that produced them has committed.

Events are used for:
1. Notifications - telling rostering and UI collaborators that state moved
2. Observability - every accepted mutation is logged once
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from .clock import utcnow


class EventType(str, Enum):
    """Types of domain events."""
    # Preference Events
    PREFERENCE_SET = "preference.set"
    PREFERENCE_REMOVED = "preference.removed"

    # Restriction Events
    RESTRICTION_SET = "restriction.set"
    RESTRICTION_REMOVED = "restriction.removed"

    # Assignment Events
    ASSIGNMENT_ADDED = "assignment.added"
    ASSIGNMENT_ENDED = "assignment.ended"
    ASSIGNMENT_REMOVED = "assignment.removed"

    # Client Events
    CLIENT_STATUS_CHANGED = "client.status_changed"
    CLIENT_ARCHIVED = "client.archived"
    CLIENT_RESTORED = "client.restored"


class DomainEvent(BaseModel):
    """
    Base class for all domain events.

    All events are immutable and contain:
    - Unique event ID
    - When the event occurred
    - Who caused it
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1, description="Event schema version")

    actor: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    # Every care-team event belongs to a client
    client_id: UUID
    aggregate_type: str = "client"


# =============================================================================
# PREFERENCE / RESTRICTION EVENTS
# =============================================================================

class PreferenceSet(DomainEvent):
    """Raised when a staff member becomes preferred for a client."""
    event_type: EventType = EventType.PREFERENCE_SET

    preference_id: UUID
    staff_id: UUID
    level: str


class PreferenceRemoved(DomainEvent):
    """Raised when a preference is deactivated or deleted."""
    event_type: EventType = EventType.PREFERENCE_REMOVED

    preference_id: UUID
    staff_id: UUID
    hard_delete: bool = False


class RestrictionSet(DomainEvent):
    """Raised when a staff member becomes restricted for a client."""
    event_type: EventType = EventType.RESTRICTION_SET

    restriction_id: UUID
    staff_id: UUID
    severity: str
    reason: str


class RestrictionRemoved(DomainEvent):
    """Raised when a restriction is deactivated or deleted."""
    event_type: EventType = EventType.RESTRICTION_REMOVED

    restriction_id: UUID
    staff_id: UUID
    hard_delete: bool = False


# =============================================================================
# ASSIGNMENT EVENTS
# =============================================================================

class AssignmentAdded(DomainEvent):
    event_type: EventType = EventType.ASSIGNMENT_ADDED

    assignment_id: UUID
    staff_id: UUID
    assignment_type: str


class AssignmentEnded(DomainEvent):
    event_type: EventType = EventType.ASSIGNMENT_ENDED

    assignment_id: UUID
    staff_id: UUID
    end_date: datetime


class AssignmentRemoved(DomainEvent):
    event_type: EventType = EventType.ASSIGNMENT_REMOVED

    assignment_id: UUID
    staff_id: UUID


# =============================================================================
# CLIENT EVENTS
# =============================================================================

class ClientStatusChanged(DomainEvent):
    """Raised once per accepted status transition."""
    event_type: EventType = EventType.CLIENT_STATUS_CHANGED

    previous_status: str
    new_status: str
    reason: Optional[str] = None
    log_entry_id: UUID


class ClientArchived(DomainEvent):
    event_type: EventType = EventType.CLIENT_ARCHIVED

    reason: str


class ClientRestored(DomainEvent):
    event_type: EventType = EventType.CLIENT_RESTORED
