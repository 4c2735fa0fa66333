"""
Audit Logger

DESIGN DECISION: Every store mutation, and every rejected one, is logged.
This provides:
1. Traceability of changes to the local store
2. Debugging capability when a save fails
3. History without keeping old snapshots around

The audit logger:
- Is async to match the storage interface
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from account_manager.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from account_manager.services.storage import AuditStorageInterface


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog for local JSON logs."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(
        self,
        account_id: str,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            account_id=account_id,
            login=login,
            correlation_id=correlation_id,
        ))

    async def log_account_updated(
        self,
        account_id: str,
        login: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_updated(
            account_id=account_id,
            login=login,
            correlation_id=correlation_id,
        ))

    async def log_account_deleted(
        self,
        account_id: str,
        login: str,
        affected_groups: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.account_deleted(
            account_id=account_id,
            login=login,
            affected_groups=affected_groups,
            correlation_id=correlation_id,
        ))

    async def log_accounts_imported(
        self,
        imported: int,
        created: int,
        updated: int,
        skipped: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a finished bulk import (counts only, never record contents)."""
        await self.log(AuditEventBuilder.accounts_imported(
            imported=imported,
            created=created,
            updated=updated,
            skipped=skipped,
            correlation_id=correlation_id,
        ))

    async def log_group_created(
        self,
        group_id: str,
        name: str,
        admin_account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            admin_account_id=admin_account_id,
            correlation_id=correlation_id,
        ))

    async def log_group_deleted(
        self,
        group_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.group_deleted(
            group_id=group_id,
            name=name,
            correlation_id=correlation_id,
        ))

    async def log_admin_assigned(
        self,
        group_id: str,
        account_id: str,
        previous_admin_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.admin_assigned(
            group_id=group_id,
            account_id=account_id,
            previous_admin_id=previous_admin_id,
            correlation_id=correlation_id,
        ))

    async def log_member_added(
        self,
        group_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_added(
            group_id=group_id,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_member_removed(
        self,
        group_id: str,
        account_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.member_removed(
            group_id=group_id,
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_action_rejected(
        self,
        action: str,
        error_type: str,
        error_message: str,
        field: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.action_rejected(
            action=action,
            error_type=error_type,
            error_message=error_message,
            field=field,
            correlation_id=correlation_id,
        ))

    async def log_store_loaded(
        self,
        account_count: int,
        group_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.store_loaded(
            account_count=account_count,
            group_count=group_count,
            correlation_id=correlation_id,
        ))

    async def log_persistence_failed(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.persistence_failed(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g. a bulk import).
    Pass it through all subsequent operations.
    """
    return uuid4()
