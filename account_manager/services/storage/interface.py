"""
Abstract Storage Interface

DESIGN DECISION: The core never talks to a file or a database directly.
It talks to these two contracts:

- StoreStorageInterface: load/save whole Store snapshots
- AuditStorageInterface: append-only audit trail

This allows us to:
1. Use a local JSON file in the app
2. Use in-memory storage for testing
3. Swap in another backend later without touching business logic

CRITICAL: ``save`` returns the canonical stored form. Callers must adopt
the returned value as the new truth, not the value they sent.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from account_manager.errors import PersistenceError
from account_manager.models.audit import AuditEvent
from account_manager.models.store import Store


class StoreStorageInterface(ABC):
    """
    Abstract interface for Store snapshot persistence.

    There are no partial or field-level writes: the snapshot is the
    only unit of persistence.
    """

    @abstractmethod
    async def load(self) -> Store:
        """
        Load the persisted snapshot.

        Returns:
            The normalized snapshot, or an empty Store if none exists

        Raises:
            PersistenceError: If the snapshot exists but cannot be read
        """
        pass

    @abstractmethod
    async def save(self, store: Store) -> Store:
        """
        Persist a snapshot.

        Args:
            store: The candidate snapshot

        Returns:
            The canonical form that was actually stored

        Raises:
            PersistenceError: If the write fails
        """
        pass

    def describe_location(self) -> Optional[str]:
        """Human-readable location of the data (e.g. a file path)."""
        return None


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for one user action, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class CorruptDataError(PersistenceError):
    """The persisted snapshot exists but could not be decoded."""
    pass
