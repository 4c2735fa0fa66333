"""
In-Memory Storage Implementation

Used by tests and by callers that want a throwaway store.

The in-memory store emulates the real save handshake: it normalizes what
it is given and returns the normalized copy, so callers that forget to
adopt the returned value are caught in tests. It can also be told to fail
to exercise the revert-on-failure path.
"""

from typing import Optional
from uuid import UUID

from account_manager.errors import PersistenceError
from account_manager.models.audit import AuditEvent
from account_manager.models.store import Store
from account_manager.normalize import normalize_store
from account_manager.services.storage.interface import (
    AuditStorageInterface,
    StoreStorageInterface,
)


class InMemoryStoreStorage(StoreStorageInterface):
    """Keeps the last saved snapshot in memory."""

    def __init__(self, initial: Optional[Store] = None):
        self._stored: Optional[Store] = normalize_store(initial) if initial else None
        self.fail_next_save: bool = False
        self.fail_next_load: bool = False
        self.save_calls: int = 0

    @property
    def stored(self) -> Optional[Store]:
        return self._stored

    def describe_location(self) -> Optional[str]:
        return "memory"

    async def load(self) -> Store:
        if self.fail_next_load:
            self.fail_next_load = False
            raise PersistenceError("Simulated load failure")
        return self._stored if self._stored is not None else Store.empty()

    async def save(self, store: Store) -> Store:
        self.save_calls += 1
        if self.fail_next_save:
            self.fail_next_save = False
            raise PersistenceError("Simulated save failure")
        self._stored = normalize_store(store)
        return self._stored


class InMemoryAuditStorage(AuditStorageInterface):
    """Audit events kept in a list, in append order."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
