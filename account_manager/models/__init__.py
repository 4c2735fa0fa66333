"""
Data Models Package

This package contains all Pydantic models used in the Account Manager system.
All data flowing through the system must conform to these schemas.
"""

from account_manager.models.store import (
    DATA_VERSION,
    Account,
    AccountDraft,
    FamilyGroup,
    ImportCandidate,
    ImportResult,
    Member,
    MemberRole,
    SkippedRecord,
    Store,
    new_id,
    normalize_login,
    now_ms,
)
from account_manager.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Store models
    "DATA_VERSION",
    "Account",
    "AccountDraft",
    "FamilyGroup",
    "ImportCandidate",
    "ImportResult",
    "Member",
    "MemberRole",
    "SkippedRecord",
    "Store",
    "new_id",
    "normalize_login",
    "now_ms",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
