"""
Read-Side Queries

DESIGN DECISION: Queries are DETERMINISTIC functions over a Store snapshot.
They never mutate and never touch storage, so any caller (UI, CLI, tests)
can run them against the facade's current snapshot.
"""

from pydantic import BaseModel, Field

from account_manager.models.store import Account, Store


class StoreSummary(BaseModel):
    """Headline counters for the store."""

    account_count: int = Field(ge=0)
    linked_account_count: int = Field(
        ge=0,
        description="Accounts that belong to some family group"
    )
    group_count: int = Field(ge=0)


def account_group_labels(store: Store) -> dict[str, list[str]]:
    """
    Map account id → labels like ``"Smith family (Admin)"``.

    An account holds at most one group, but a list keeps callers
    simple when rendering.
    """
    labels: dict[str, list[str]] = {}
    for group in store.groups:
        for member in group.members:
            labels.setdefault(member.account_id, []).append(
                f"{group.name} ({member.role.label})"
            )
    return labels


def _haystack(account: Account, group_labels: list[str]) -> str:
    return " ".join([
        account.login,
        account.password,
        account.authenticator_token,
        account.app_password,
        account.authenticator_url,
        account.messages_url,
        account.note,
        " ".join(group_labels),
    ]).lower()


def search_accounts(store: Store, query: str) -> list[Account]:
    """
    Case-insensitive substring search over every account field and the
    account's group label. An empty query returns all accounts.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return list(store.accounts)

    labels = account_group_labels(store)
    return [
        account
        for account in store.accounts
        if needle in _haystack(account, labels.get(account.id, []))
    ]


def summarize_store(store: Store) -> StoreSummary:
    linked = {member.account_id for group in store.groups for member in group.members}
    return StoreSummary(
        account_count=len(store.accounts),
        linked_account_count=len(linked),
        group_count=len(store.groups),
    )
