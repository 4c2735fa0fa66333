"""
Audit Models for Account Manager

Every store mutation (and every rejected one) is logged for audit purposes.
This provides:
1. Traceability of who-changed-what in the local store
2. Debugging information when a save fails
3. A way to reconstruct history without keeping old snapshots

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Secrets (passwords, tokens, app passwords) NEVER appear in audit details.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every store operation has its own event type.
    """
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"
    ACCOUNTS_IMPORTED = "accounts_imported"

    # Family groups
    GROUP_CREATED = "group_created"
    GROUP_DELETED = "group_deleted"
    ADMIN_ASSIGNED = "admin_assigned"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"

    # Rejections
    ACTION_REJECTED = "action_rejected"

    # Persistence
    STORE_LOADED = "store_loaded"
    SAVE_FAILED = "save_failed"
    LOAD_FAILED = "load_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every store operation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity ('account', 'group', 'store')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g. one user action)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.account_created(account_id, login)
        event = AuditEventBuilder.member_added(group_id, account_id)
    """

    @staticmethod
    def account_created(
        account_id: str,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account created: {login}",
            details={"login": login},
            is_user_action=True,
        )

    @staticmethod
    def account_updated(
        account_id: str,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account updated: {login}",
            details={"login": login},
            is_user_action=True,
        )

    @staticmethod
    def account_deleted(
        account_id: str,
        login: str,
        affected_groups: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DELETED,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Account deleted: {login}",
            details={
                "login": login,
                "affected_groups": affected_groups,
            },
            is_user_action=True,
        )

    @staticmethod
    def accounts_imported(
        imported: int,
        created: int,
        updated: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_IMPORTED,
            entity_type="store",
            correlation_id=correlation_id,
            description=(
                f"Import finished: {imported} imported, "
                f"{created} created, {updated} updated"
            ),
            details={
                "imported": imported,
                "created": created,
                "updated": updated,
                "skipped": skipped,
            },
            is_user_action=True,
        )

    @staticmethod
    def group_created(
        group_id: str,
        name: str,
        admin_account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Family group created: {name}",
            details={
                "name": name,
                "admin_account_id": admin_account_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def group_deleted(
        group_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_DELETED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=f"Family group deleted: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def admin_assigned(
        group_id: str,
        account_id: str,
        previous_admin_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADMIN_ASSIGNED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Group admin assigned",
            details={
                "account_id": account_id,
                "previous_admin_id": previous_admin_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def member_added(
        group_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Member added to group",
            details={"account_id": account_id},
            is_user_action=True,
        )

    @staticmethod
    def member_removed(
        group_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Member removed from group",
            details={"account_id": account_id},
            is_user_action=True,
        )

    @staticmethod
    def action_rejected(
        action: str,
        error_type: str,
        error_message: str,
        field: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Action rejected: {action}",
            error_code=error_type,
            error_message=error_message,
            details={
                "action": action,
                "field": field,
            },
            is_user_action=True,
        )

    @staticmethod
    def store_loaded(
        account_count: int,
        group_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_LOADED,
            entity_type="store",
            correlation_id=correlation_id,
            description=f"Store loaded: {account_count} accounts, {group_count} groups",
            details={
                "account_count": account_count,
                "group_count": group_count,
            },
        )

    @staticmethod
    def persistence_failed(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.LOAD_FAILED
            if operation == "load"
            else AuditEventType.SAVE_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            entity_type="store",
            correlation_id=correlation_id,
            description=f"Store {operation} failed",
            error_message=error_message,
            details={"operation": operation},
        )
