"""
Store Facade

The single owner of the canonical in-memory Store snapshot.

Every operation computes a complete NEW snapshot from the current one and
returns it. The facade's own snapshot only changes through ``adopt`` -
which the workspace calls once the storage collaborator has acknowledged
the save. Until then a returned snapshot is only a candidate.

The facade is also the single point that assigns identities and timestamps;
the membership engine and the reconciler receive them as arguments.
"""

from collections.abc import Callable
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from account_manager.errors import ValidationError
from account_manager.membership import engine
from account_manager.models.store import (
    Account,
    AccountDraft,
    Store,
    new_id,
    normalize_login,
    now_ms,
)
from account_manager.parsing.parser import parse_records
from account_manager.reconcile.reconciler import reconcile


class ImportOutcome(BaseModel):
    """Candidate snapshot produced by an import, plus its counters."""

    store: Store
    created: int = Field(ge=0)
    updated: int = Field(ge=0)
    skipped: int = Field(ge=0)

    @property
    def imported(self) -> int:
        return self.created + self.updated


def _draft(fields: dict) -> AccountDraft:
    """Build a draft, turning pydantic errors into our ValidationError."""
    try:
        return AccountDraft.model_validate(fields)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        if field in ("login", "password") and first["type"] == "string_too_short":
            raise ValidationError(f"{field.capitalize()} cannot be empty", field=field)
        raise ValidationError(f"Invalid account data: {first['msg']}", field=field)


class StoreFacade:
    """
    In-memory owner of the Store snapshot.

    Usage:
        facade = StoreFacade(loaded_store)
        candidate = facade.create_account(login="a@x.com", password="pw")
        facade.adopt(await storage.save(candidate))
    """

    def __init__(
        self,
        snapshot: Optional[Store] = None,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[str], str] = new_id,
        default_authenticator_url: str = "",
    ):
        self._snapshot = snapshot or Store.empty()
        self._clock = clock
        self._id_factory = id_factory
        self._default_authenticator_url = default_authenticator_url

    @property
    def snapshot(self) -> Store:
        return self._snapshot

    def adopt(self, store: Store) -> Store:
        """Make ``store`` the canonical snapshot (after a confirmed save)."""
        self._snapshot = store
        return store

    def _ensure_unique_login(self, login: str, except_id: Optional[str] = None) -> None:
        existing = self._snapshot.find_account_by_login(login)
        if existing is not None and existing.id != except_id:
            raise ValidationError(
                f"An account with login {normalize_login(login)} already exists",
                field="login",
            )

    def _require_account(self, account_id: str) -> Account:
        account = self._snapshot.get_account(account_id)
        if account is None:
            raise ValidationError(f"Account not found: {account_id}", field="account_id")
        return account

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def create_account(self, **fields) -> Store:
        """
        Add a new account.

        Raises:
            ValidationError: Empty login/password or duplicate login
        """
        draft = _draft(fields)
        self._ensure_unique_login(draft.login)
        now = self._clock()
        account = Account.from_draft(draft, self._id_factory("acc"), now)
        return self._snapshot.model_copy(
            update={"accounts": self._snapshot.accounts + (account,)}
        )

    def update_account(self, account_id: str, **fields) -> Store:
        """
        Replace the editable fields of an account.

        ``id`` and ``createdAt`` are preserved.

        Raises:
            ValidationError: Unknown account, empty login/password,
                or login taken by another account
        """
        current = self._require_account(account_id)
        draft = _draft(fields)
        self._ensure_unique_login(draft.login, except_id=account_id)
        updated = current.with_draft(draft, self._clock())
        return self._snapshot.model_copy(
            update={
                "accounts": tuple(
                    updated if account.id == account_id else account
                    for account in self._snapshot.accounts
                )
            }
        )

    def delete_account(self, account_id: str) -> Store:
        """
        Delete an account and every membership that references it.

        Raises:
            ValidationError: Unknown account
        """
        self._require_account(account_id)
        store = engine.remove_account_everywhere(
            self._snapshot, account_id=account_id, now=self._clock()
        )
        return store.model_copy(
            update={"accounts": tuple(a for a in store.accounts if a.id != account_id)}
        )

    def import_accounts(self, raw: str) -> ImportOutcome:
        """Parse pasted text and merge it into the accounts by login."""
        report = parse_records(raw, self._default_authenticator_url)
        if not report.candidates:
            return ImportOutcome(
                store=self._snapshot,
                created=0,
                updated=0,
                skipped=report.skipped_count,
            )

        result = reconcile(
            self._snapshot.accounts,
            report.candidates,
            now=self._clock(),
            id_factory=lambda: self._id_factory("acc"),
        )
        return ImportOutcome(
            store=self._snapshot.model_copy(update={"accounts": result.accounts}),
            created=result.created,
            updated=result.updated,
            skipped=report.skipped_count,
        )

    # =========================================================================
    # FAMILY GROUPS
    # =========================================================================

    def create_group(self, name: str, note: str, admin_account_id: str) -> Store:
        """
        Create a family group with ``admin_account_id`` as its only member.

        Raises:
            ValidationError: Empty name, empty or unknown admin
        """
        return engine.create_group(
            self._snapshot,
            group_id=self._id_factory("grp"),
            name=name,
            note=note,
            admin_account_id=admin_account_id,
            now=self._clock(),
        )

    def assign_admin(self, group_id: str, account_id: str) -> Store:
        """
        Make ``account_id`` the admin of ``group_id``, replacing any other admin.

        Raises:
            ValidationError: Unknown group, empty or unknown account
        """
        return engine.assign_admin(
            self._snapshot, group_id=group_id, account_id=account_id, now=self._clock()
        )

    def add_member(self, group_id: str, account_id: str) -> Store:
        """
        Add a plain member, moving it out of any other group.

        Raises:
            ValidationError: Unknown group or account, or the account is the admin
            PreconditionError: The group has no admin
        """
        return engine.add_member(
            self._snapshot, group_id=group_id, account_id=account_id, now=self._clock()
        )

    def remove_member(self, group_id: str, account_id: str) -> Store:
        """
        Remove a plain member. No-op if the account is not in the group.

        Raises:
            ValidationError: Unknown group
            PreconditionError: The account is the group's admin
        """
        return engine.remove_member(
            self._snapshot, group_id=group_id, account_id=account_id, now=self._clock()
        )

    def delete_group(self, group_id: str) -> Store:
        """Delete a group and its memberships; accounts are kept."""
        return engine.delete_group(self._snapshot, group_id=group_id)
