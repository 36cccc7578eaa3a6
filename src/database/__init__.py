"""
Database Layer for the care-team engine.

This module provides:
- SQLAlchemy ORM models for directory, roster and audit tables
- Async database engine with connection pooling
- Repositories and the Unit of Work pattern
"""

from .models import (
    Base,
    ClientRecord,
    StaffRecord,
    AssignmentRecord,
    PreferenceRecord,
    RestrictionRecord,
    PairGuardRecord,
    StatusLogRecord,
    ActivityLogRecord,
)

from .async_engine import (
    create_engine,
    create_schema,
    get_async_engine,
    get_async_session_factory,
    get_session_factory,
    init_database,
    close_database,
    DatabaseHealth,
)

from .unit_of_work import (
    CareTeamUnitOfWork,
    UnitOfWorkFactory,
)
