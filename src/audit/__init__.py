"""
Audit Module.

- StatusAuditLog: client status state machine and its append-only history
- ActivityTrail: hashed, immutable record of every care-team mutation
"""

from .status_audit_log import StatusAuditLog
from .activity_trail import ActivityTrail, verify_entry

__all__ = [
    "StatusAuditLog",
    "ActivityTrail",
    "verify_entry",
]
