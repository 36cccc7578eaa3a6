"""
SQLAlchemy ORM Models for the care-team database.

This module defines the schema for the care-team engine: directory rows
(clients, staff), the roster tables (assignments, preferences,
restrictions), the optimistic lock rows that guard each (client, staff)
pair, and the two append-only logs.

Architecture:
- Primary Keys: UUID for all tables (globally unique)
- Enumerations: stored as their string values, validated in the domain layer
- Timestamps: naive UTC
- Append-only tables: status log and activity log reject UPDATE/DELETE flushes
"""

import hashlib
import json

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey, Index,
    UniqueConstraint, CheckConstraint, event, JSON
)
from sqlalchemy.dialects.postgresql import UUID, JSONB as PG_JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from domain.clock import utcnow
from domain.exceptions import ImmutableRecordError


# Cross-database compatible JSON type
# Uses JSONB on PostgreSQL, JSON on SQLite/others
class JSONB(TypeDecorator):
    """A portable JSONB type that works with both PostgreSQL and SQLite."""
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(JSON())


Base = declarative_base()


# =============================================================================
# DIRECTORY
# =============================================================================

class ClientRecord(Base):
    """
    Client - identity plus the status and archive fields owned by the core.

    ``status_version`` is bumped on every accepted status change and is the
    compare-and-set token for concurrent transitions.
    """
    __tablename__ = "clients"

    id = Column(UUID(as_uuid=True), primary_key=True)
    name = Column(String(200), nullable=False)

    # Operational status (NULL reads as Active)
    status = Column(String(20), nullable=True, default="Active")
    status_version = Column(Integer, nullable=False, default=0)
    status_changed_at = Column(DateTime, nullable=True)
    status_changed_by = Column(String(100), nullable=True)

    # Archival
    is_archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime, nullable=True)
    archived_by = Column(String(100), nullable=True)
    archive_reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_clients_status', 'status'),
    )


class StaffRecord(Base):
    """Staff - identity only; ``is_active`` gates preferences and assignments."""
    __tablename__ = "staff"

    id = Column(UUID(as_uuid=True), primary_key=True)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


# =============================================================================
# ROSTER
# =============================================================================

class AssignmentRecord(Base):
    """Staff rostered against a client. Duplicates of the same type are allowed."""
    __tablename__ = "client_assignments"

    id = Column(UUID(as_uuid=True), primary_key=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("staff.id"), nullable=False, index=True)

    assignment_type = Column(String(30), nullable=False,
                             comment="primary_support, secondary_support, care_manager, clinical_nurse")
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_assignment_client_start', 'client_id', 'start_date'),
        CheckConstraint('end_date IS NULL OR end_date >= start_date', name='ck_assignment_end_after_start'),
    )


class PreferenceRecord(Base):
    """Ranked preference for rostering a staff member on a client."""
    __tablename__ = "client_staff_preferences"

    id = Column(UUID(as_uuid=True), primary_key=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("staff.id"), nullable=False, index=True)

    level = Column(String(20), nullable=False, comment="primary, secondary, backup")
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_preference_pair', 'client_id', 'staff_id', 'is_active'),
    )


class RestrictionRecord(Base):
    """Graded restriction against rostering a staff member on a client."""
    __tablename__ = "client_staff_restrictions"

    id = Column(UUID(as_uuid=True), primary_key=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("staff.id"), nullable=False, index=True)

    reason = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, comment="warning, soft_block, hard_block")
    is_active = Column(Boolean, nullable=False, default=True)

    # Effective window
    effective_from = Column(DateTime, nullable=False)
    effective_to = Column(DateTime, nullable=True)

    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_restriction_pair', 'client_id', 'staff_id', 'is_active'),
        CheckConstraint("length(trim(reason)) > 0", name='ck_restriction_reason_not_blank'),
    )


class PairGuardRecord(Base):
    """
    Optimistic lock row for one (client, staff) pair.

    Every preference/restriction write advances ``version`` with a
    compare-and-set; the composite primary key makes two first writers collide.
    """
    __tablename__ = "care_team_pair_guards"

    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), primary_key=True)
    staff_id = Column(UUID(as_uuid=True), ForeignKey("staff.id"), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


# =============================================================================
# APPEND-ONLY LOGS
# =============================================================================

class StatusLogRecord(Base):
    """
    Status Log Record - one row per accepted client status transition.

    Never updated or deleted.
    """
    __tablename__ = "client_status_log"

    id = Column(UUID(as_uuid=True), primary_key=True)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id"), nullable=False, index=True)

    previous_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)

    changed_by = Column(String(100), nullable=False)
    changed_by_name = Column(String(200), nullable=True)

    created_at = Column(DateTime, nullable=False)
    sequence = Column(Integer, nullable=False, comment="Per-client order; equals the client's status_version")

    __table_args__ = (
        UniqueConstraint('client_id', 'sequence', name='uq_status_log_client_sequence'),
        Index('ix_status_log_client_created', 'client_id', 'created_at'),
    )


class ActivityLogRecord(Base):
    """
    Activity Log Record - immutable trail of every accepted care-team mutation.
    """
    __tablename__ = "care_team_activity_log"

    id = Column(UUID(as_uuid=True), primary_key=True)
    client_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False)
    actor = Column(String(100), nullable=True)
    details = Column(JSONB, nullable=False, default=dict)

    created_at = Column(DateTime, nullable=False)

    # Integrity
    hash_value = Column(String(64), nullable=False, comment="SHA256 for integrity verification")

    __table_args__ = (
        Index('ix_activity_client_created', 'client_id', 'created_at'),
    )


# =============================================================================
# EVENT LISTENERS
# =============================================================================

@event.listens_for(ClientRecord, 'before_update')
def receive_before_update(mapper, connection, target):
    """Update timestamp on record modification."""
    target.updated_at = utcnow()


def activity_hash(target) -> str:
    """SHA256 over an activity row's identity and content."""
    details = json.dumps(target.details or {}, sort_keys=True, default=str)
    hash_content = (
        f"{target.id}{target.created_at}{target.client_id}{target.action}"
        f"{target.entity_type}{target.entity_id}{target.actor}{details}"
    )
    return hashlib.sha256(hash_content.encode()).hexdigest()


@event.listens_for(ActivityLogRecord, 'before_insert')
def calculate_activity_hash(mapper, connection, target):
    """Calculate integrity hash for activity record."""
    target.hash_value = activity_hash(target)


def _reject_mutation(mapper, connection, target):
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} is append-only and cannot be modified"
    )


for _append_only in (StatusLogRecord, ActivityLogRecord):
    event.listen(_append_only, 'before_update', _reject_mutation)
    event.listen(_append_only, 'before_delete', _reject_mutation)
