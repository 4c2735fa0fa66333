"""
Main Orchestrator for Account Manager

This module ties together the facade, the storage collaborator and the
audit logger, and defines the commit flow every mutation goes through:

    intent → facade computes candidate → storage.save(candidate)
           → adopt the RETURNED snapshot → audit

DESIGN DECISION: The orchestrator enforces the boundaries:
- A candidate snapshot is provisional until the storage acknowledges it
- A failed save leaves the previous snapshot authoritative
- Writes are single-flight: while one save is outstanding, any other
  mutation is refused rather than interleaved
- Every accepted or rejected action is audited
"""

from collections.abc import Awaitable, Callable
from typing import Optional
from uuid import UUID

import structlog

from account_manager.audit import AuditLogger, configure_logging, create_correlation_id
from account_manager.config import get_settings
from account_manager.errors import (
    AccountManagerError,
    PersistenceError,
    PreconditionError,
    ValidationError,
)
from account_manager.facade import StoreFacade
from account_manager.membership.engine import find_group_of_account
from account_manager.models.store import ImportResult, Store
from account_manager.services.storage import (
    InMemoryAuditStorage,
    InMemoryStoreStorage,
    JsonFileStoreStorage,
    JsonLinesAuditStorage,
    StoreStorageInterface,
)


logger = structlog.get_logger(__name__)


class AccountWorkspace:
    """
    Orchestrates every store mutation.

    Flow per action:
    1. Refuse if another save is in flight
    2. Facade builds the candidate snapshot (may raise ValidationError /
       PreconditionError - nothing has changed yet)
    3. Storage saves it and returns the canonical form
    4. Facade adopts the canonical form
    5. Audit

    If step 3 fails, step 4 never happens.
    """

    def __init__(
        self,
        storage: StoreStorageInterface,
        facade: Optional[StoreFacade] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._facade = facade or StoreFacade(
            default_authenticator_url=get_settings().imports.default_authenticator_url
        )
        self._audit_logger = audit_logger or AuditLogger()
        self._saving = False

    @property
    def snapshot(self) -> Store:
        return self._facade.snapshot

    @property
    def is_saving(self) -> bool:
        return self._saving

    @property
    def storage_location(self) -> Optional[str]:
        return self._storage.describe_location()

    async def load(self) -> Store:
        """
        Load the persisted snapshot and make it authoritative.

        Raises:
            PersistenceError: The snapshot could not be read; the current
                (empty) snapshot is kept
        """
        correlation_id = create_correlation_id()
        try:
            store = await self._storage.load()
        except PersistenceError as e:
            await self._audit_logger.log_persistence_failed(
                operation="load",
                error_message=e.message,
                correlation_id=correlation_id,
            )
            raise

        self._facade.adopt(store)
        await self._audit_logger.log_store_loaded(
            account_count=len(store.accounts),
            group_count=len(store.groups),
            correlation_id=correlation_id,
        )
        return store

    async def _commit(
        self,
        action: str,
        build: Callable[[], Store],
        correlation_id: UUID,
    ) -> Store:
        """Build a candidate, persist it and adopt what the storage returns."""
        if self._saving:
            error = PreconditionError("Another change is still being saved; try again")
            await self._reject(action, error, correlation_id)
            raise error

        try:
            candidate = build()
        except (ValidationError, PreconditionError) as e:
            await self._reject(action, e, correlation_id)
            raise

        if candidate is self._facade.snapshot:
            logger.debug("store_unchanged", action=action)
            return candidate

        self._saving = True
        try:
            saved = await self._storage.save(candidate)
        except PersistenceError as e:
            logger.warning("store_save_rejected", action=action, error=e.message)
            await self._audit_logger.log_persistence_failed(
                operation="save",
                error_message=e.message,
                correlation_id=correlation_id,
            )
            raise
        finally:
            self._saving = False

        return self._facade.adopt(saved)

    async def _reject(
        self,
        action: str,
        error: AccountManagerError,
        correlation_id: UUID,
    ) -> None:
        await self._audit_logger.log_action_rejected(
            action=action,
            error_type=type(error).__name__,
            error_message=error.message,
            field=error.field,
            correlation_id=correlation_id,
        )

    async def _run(
        self,
        action: str,
        build: Callable[[], Store],
        on_success: Callable[[Store, UUID], Awaitable[None]],
    ) -> Store:
        correlation_id = create_correlation_id()
        before = self._facade.snapshot
        saved = await self._commit(action, build, correlation_id)
        if saved is not before:
            await on_success(saved, correlation_id)
        return saved

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    async def create_account(self, **fields) -> Store:
        async def audit(saved: Store, correlation_id: UUID) -> None:
            account = saved.find_account_by_login(fields.get("login", ""))
            if account is not None:
                await self._audit_logger.log_account_created(
                    account_id=account.id,
                    login=account.login,
                    correlation_id=correlation_id,
                )

        return await self._run(
            "create_account",
            lambda: self._facade.create_account(**fields),
            audit,
        )

    async def update_account(self, account_id: str, **fields) -> Store:
        async def audit(saved: Store, correlation_id: UUID) -> None:
            account = saved.get_account(account_id)
            await self._audit_logger.log_account_updated(
                account_id=account_id,
                login=account.login if account else fields.get("login", ""),
                correlation_id=correlation_id,
            )

        return await self._run(
            "update_account",
            lambda: self._facade.update_account(account_id, **fields),
            audit,
        )

    async def delete_account(self, account_id: str) -> Store:
        previous = self._facade.snapshot
        existing = previous.get_account(account_id)
        holder = find_group_of_account(previous, account_id)

        async def audit(saved: Store, correlation_id: UUID) -> None:
            await self._audit_logger.log_account_deleted(
                account_id=account_id,
                login=existing.login if existing else "",
                affected_groups=[holder.id] if holder else [],
                correlation_id=correlation_id,
            )

        return await self._run(
            "delete_account",
            lambda: self._facade.delete_account(account_id),
            audit,
        )

    async def import_accounts(self, raw: str) -> ImportResult:
        """
        Bulk import pasted text and persist the merged result.

        Raises:
            ValidationError: The text is empty or too large
            PersistenceError: The merged snapshot could not be saved
        """
        correlation_id = create_correlation_id()
        max_chars = get_settings().imports.max_input_chars

        if not raw or not raw.strip():
            error = ValidationError("Paste some account text first", field="raw")
        elif len(raw) > max_chars:
            error = ValidationError(
                f"Import text is too large ({len(raw)} > {max_chars} characters)",
                field="raw",
            )
        else:
            error = None
        if error is not None:
            await self._reject("import_accounts", error, correlation_id)
            raise error

        outcome = None

        def build() -> Store:
            nonlocal outcome
            outcome = self._facade.import_accounts(raw)
            return outcome.store

        saved = await self._commit("import_accounts", build, correlation_id)
        await self._audit_logger.log_accounts_imported(
            imported=outcome.imported,
            created=outcome.created,
            updated=outcome.updated,
            skipped=outcome.skipped,
            correlation_id=correlation_id,
        )
        return ImportResult(
            imported=outcome.imported,
            created=outcome.created,
            updated=outcome.updated,
            skipped=outcome.skipped,
            data=saved,
        )

    # =========================================================================
    # FAMILY GROUPS
    # =========================================================================

    async def create_group(self, name: str, note: str, admin_account_id: str) -> Store:
        before_ids = {group.id for group in self._facade.snapshot.groups}

        async def audit(saved: Store, correlation_id: UUID) -> None:
            for group in saved.groups:
                if group.id not in before_ids:
                    await self._audit_logger.log_group_created(
                        group_id=group.id,
                        name=group.name,
                        admin_account_id=admin_account_id,
                        correlation_id=correlation_id,
                    )

        return await self._run(
            "create_group",
            lambda: self._facade.create_group(name, note, admin_account_id),
            audit,
        )

    async def assign_admin(self, group_id: str, account_id: str) -> Store:
        group = self._facade.snapshot.get_group(group_id)
        previous_admin = group.admin if group else None

        async def audit(saved: Store, correlation_id: UUID) -> None:
            await self._audit_logger.log_admin_assigned(
                group_id=group_id,
                account_id=account_id,
                previous_admin_id=previous_admin.account_id if previous_admin else None,
                correlation_id=correlation_id,
            )

        return await self._run(
            "assign_admin",
            lambda: self._facade.assign_admin(group_id, account_id),
            audit,
        )

    async def add_member(self, group_id: str, account_id: str) -> Store:
        async def audit(saved: Store, correlation_id: UUID) -> None:
            await self._audit_logger.log_member_added(
                group_id=group_id,
                account_id=account_id,
                correlation_id=correlation_id,
            )

        return await self._run(
            "add_member",
            lambda: self._facade.add_member(group_id, account_id),
            audit,
        )

    async def remove_member(self, group_id: str, account_id: str) -> Store:
        async def audit(saved: Store, correlation_id: UUID) -> None:
            await self._audit_logger.log_member_removed(
                group_id=group_id,
                account_id=account_id,
                correlation_id=correlation_id,
            )

        return await self._run(
            "remove_member",
            lambda: self._facade.remove_member(group_id, account_id),
            audit,
        )

    async def delete_group(self, group_id: str) -> Store:
        group = self._facade.snapshot.get_group(group_id)

        async def audit(saved: Store, correlation_id: UUID) -> None:
            await self._audit_logger.log_group_deleted(
                group_id=group_id,
                name=group.name if group else "",
                correlation_id=correlation_id,
            )

        return await self._run(
            "delete_group",
            lambda: self._facade.delete_group(group_id),
            audit,
        )


def create_workspace(use_storage: bool = True) -> AccountWorkspace:
    """
    Factory function to create the application workspace.

    Args:
        use_storage: Whether to persist to the local data directory.
                    Set to False for a throwaway in-memory workspace.

    Returns:
        An AccountWorkspace; call ``await workspace.load()`` before use
    """
    settings = get_settings()
    configure_logging(settings.app.log_level)

    if use_storage:
        storage = JsonFileStoreStorage()
        audit_logger = AuditLogger(JsonLinesAuditStorage())
    else:
        storage = InMemoryStoreStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    facade = StoreFacade(
        default_authenticator_url=settings.imports.default_authenticator_url
    )
    return AccountWorkspace(storage=storage, facade=facade, audit_logger=audit_logger)
