"""
Integration tests for the workspace commit flow (in-memory storage).
"""

import asyncio

import pytest

from account_manager.audit import AuditLogger
from account_manager.errors import PersistenceError, PreconditionError, ValidationError
from account_manager.facade import StoreFacade
from account_manager.models.audit import AuditEventType
from account_manager.models.store import Store
from account_manager.orchestrator import AccountWorkspace, create_workspace
from account_manager.services.storage import InMemoryAuditStorage, InMemoryStoreStorage

from conftest import FakeClock, SequentialIds, assert_invariants


class SlowStoreStorage(InMemoryStoreStorage):
    """Holds every save until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def save(self, store: Store) -> Store:
        self.started.set()
        await self.release.wait()
        return await super().save(store)


def _workspace(storage=None):
    """Build a workspace over ``storage`` with fake clock and ids."""
    audit_storage = InMemoryAuditStorage()
    workspace = AccountWorkspace(
        storage=storage or InMemoryStoreStorage(),
        facade=StoreFacade(clock=FakeClock(), id_factory=SequentialIds()),
        audit_logger=AuditLogger(audit_storage),
    )
    return workspace, audit_storage


def _event_types(audit_storage):
    """Event types recorded so far, in order."""
    return [event.event_type for event in audit_storage.events]


class TestLoad:
    """Tests for loading the persisted snapshot."""

    @pytest.mark.asyncio
    async def test_load_adopts_persisted_snapshot(self, accounts_store):
        """Test load adopts the stored snapshot and audits it."""
        workspace, audit = _workspace(InMemoryStoreStorage(accounts_store))
        store = await workspace.load()
        assert workspace.snapshot is store
        assert len(store.accounts) == 4
        assert _event_types(audit) == [AuditEventType.STORE_LOADED]

    @pytest.mark.asyncio
    async def test_load_failure_keeps_empty_snapshot(self):
        """Test a failed load leaves the empty snapshot in place."""
        storage = InMemoryStoreStorage()
        storage.fail_next_load = True
        workspace, audit = _workspace(storage)
        with pytest.raises(PersistenceError):
            await workspace.load()
        assert workspace.snapshot == Store.empty()
        assert _event_types(audit) == [AuditEventType.LOAD_FAILED]


class TestCommit:
    """Tests for the save-then-adopt commit flow."""

    @pytest.mark.asyncio
    async def test_adopts_what_storage_returns(self):
        """Test the snapshot is the one storage hands back."""
        storage = InMemoryStoreStorage()
        workspace, audit = _workspace(storage)

        await workspace.create_account(login="zed@x.com", password="pw")
        saved = await workspace.create_account(login="amy@x.com", password="pw")

        assert workspace.snapshot is saved
        assert saved is storage.stored
        # Storage normalizes: accounts come back sorted by login
        assert [a.login for a in saved.accounts] == ["amy@x.com", "zed@x.com"]
        assert _event_types(audit) == [
            AuditEventType.ACCOUNT_CREATED,
            AuditEventType.ACCOUNT_CREATED,
        ]

    @pytest.mark.asyncio
    async def test_save_failure_keeps_previous_snapshot(self):
        """Test a failed save keeps the last committed snapshot."""
        storage = InMemoryStoreStorage()
        workspace, audit = _workspace(storage)
        before = await workspace.create_account(login="a@x.com", password="pw")

        storage.fail_next_save = True
        with pytest.raises(PersistenceError):
            await workspace.create_account(login="b@x.com", password="pw")

        assert workspace.snapshot is before
        assert not workspace.is_saving
        assert _event_types(audit)[-1] == AuditEventType.SAVE_FAILED

    @pytest.mark.asyncio
    async def test_rejected_action_is_audited_and_not_saved(self):
        """Test a rejected action is audited and never saved."""
        storage = InMemoryStoreStorage()
        workspace, audit = _workspace(storage)

        with pytest.raises(ValidationError):
            await workspace.create_account(login="", password="pw")

        assert storage.save_calls == 0
        [event] = audit.events
        assert event.event_type == AuditEventType.ACTION_REJECTED
        assert event.details == {"action": "create_account", "field": "login"}

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_is_not_saved(self, accounts_store):
        """Test a no-op action skips the save."""
        storage = InMemoryStoreStorage(accounts_store)
        workspace, audit = _workspace(storage)
        await workspace.load()

        await workspace.delete_group("grp-missing")

        assert storage.save_calls == 0
        assert _event_types(audit) == [AuditEventType.STORE_LOADED]

    @pytest.mark.asyncio
    async def test_writes_are_single_flight(self):
        """Test a second write while saving is rejected."""
        storage = SlowStoreStorage()
        workspace, _ = _workspace(storage)

        first = asyncio.create_task(workspace.create_account(login="a@x.com", password="pw"))
        await storage.started.wait()
        assert workspace.is_saving

        with pytest.raises(PreconditionError):
            await workspace.create_account(login="b@x.com", password="pw")

        storage.release.set()
        saved = await first
        assert [a.login for a in saved.accounts] == ["a@x.com"]
        assert not workspace.is_saving


class TestImport:
    """Tests for bulk import through the workspace."""

    @pytest.mark.asyncio
    async def test_import_reports_counts(self, accounts_store):
        """Test import returns counts and the committed snapshot."""
        workspace, audit = _workspace(InMemoryStoreStorage(accounts_store))
        await workspace.load()

        result = await workspace.import_accounts(
            "new@x.com;pw\nalice@example.com;changed\n;no-login"
        )

        assert (result.imported, result.created, result.updated, result.skipped) == (2, 1, 1, 1)
        assert result.data is workspace.snapshot
        assert result.data.find_account_by_login("alice@example.com").password == "changed"
        assert _event_types(audit)[-1] == AuditEventType.ACCOUNTS_IMPORTED

    @pytest.mark.asyncio
    async def test_import_without_valid_records_saves_nothing(self):
        """Test an import with nothing valid does not save."""
        storage = InMemoryStoreStorage()
        workspace, _ = _workspace(storage)

        result = await workspace.import_accounts("just-a-login")

        assert (result.imported, result.skipped) == (0, 1)
        assert storage.save_calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   \n  "])
    async def test_empty_import_is_rejected(self, raw):
        """Test blank text is rejected and audited."""
        workspace, audit = _workspace()
        with pytest.raises(ValidationError):
            await workspace.import_accounts(raw)
        assert _event_types(audit) == [AuditEventType.ACTION_REJECTED]


class TestGroups:
    """Tests for group actions through the workspace."""

    @pytest.mark.asyncio
    async def test_group_lifecycle(self, accounts_store):
        """Test a full group lifecycle keeps the invariants."""
        workspace, audit = _workspace(InMemoryStoreStorage(accounts_store))
        await workspace.load()

        store = await workspace.create_group("Fam", "", "acc-a")
        [group] = store.groups
        await workspace.add_member(group.id, "acc-b")
        await workspace.assign_admin(group.id, "acc-c")
        await workspace.remove_member(group.id, "acc-b")
        store = await workspace.delete_account("acc-c")

        group = store.get_group(group.id)
        assert group.members == ()
        assert_invariants(store)

        store = await workspace.delete_group(group.id)
        assert store.groups == ()
        assert _event_types(audit) == [
            AuditEventType.STORE_LOADED,
            AuditEventType.GROUP_CREATED,
            AuditEventType.MEMBER_ADDED,
            AuditEventType.ADMIN_ASSIGNED,
            AuditEventType.MEMBER_REMOVED,
            AuditEventType.ACCOUNT_DELETED,
            AuditEventType.GROUP_DELETED,
        ]

    @pytest.mark.asyncio
    async def test_removing_admin_is_rejected(self, accounts_store):
        """Test the admin cannot be removed directly."""
        workspace, audit = _workspace(InMemoryStoreStorage(accounts_store))
        await workspace.load()
        store = await workspace.create_group("Fam", "", "acc-a")
        group_id = store.groups[0].id

        with pytest.raises(PreconditionError):
            await workspace.remove_member(group_id, "acc-a")

        assert workspace.snapshot is store
        assert audit.events[-1].error_code == "PreconditionError"


class TestCreateWorkspace:
    """Tests for the workspace factory."""

    @pytest.mark.asyncio
    async def test_in_memory_workspace(self):
        """Test the factory builds an in-memory workspace."""
        workspace = create_workspace(use_storage=False)
        assert workspace.storage_location == "memory"
        assert await workspace.load() == Store.empty()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
