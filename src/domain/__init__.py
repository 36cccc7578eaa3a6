"""
Domain layer for the care-team engine.

This module contains the entities, value objects, events, error taxonomy
and repository interfaces, following Domain-Driven Design principles.
"""

from .clock import Clock, utcnow
from .exceptions import (
    CareTeamError,
    ValidationError,
    ConflictError,
    NotFoundError,
    ArchivedClientError,
    StaleWriteError,
    ImmutableRecordError,
)
from .value_objects import (
    AssignmentType,
    PreferenceLevel,
    RestrictionSeverity,
    ClientStatus,
    Verdict,
    PreferenceSignal,
    RestrictionSignal,
    NoSignal,
    CareTeamSignal,
    EligibilityResult,
    parse_enum,
)
from .aggregates import (
    ClientSummary,
    StaffMember,
    Assignment,
    AssignmentRoster,
    Preference,
    Restriction,
    StatusLogEntry,
    StatusTransition,
    ActivityLogEntry,
)
from .events import (
    DomainEvent,
    EventType,
    PreferenceSet,
    PreferenceRemoved,
    RestrictionSet,
    RestrictionRemoved,
    AssignmentAdded,
    AssignmentEnded,
    AssignmentRemoved,
    ClientStatusChanged,
    ClientArchived,
    ClientRestored,
)
from .repositories import IUnitOfWork
from .event_bus import (
    EventBus,
    LoggingEventHandler,
    get_event_bus,
    reset_event_bus,
)
