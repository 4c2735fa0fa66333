"""Shared fixtures for Account Manager tests."""

import itertools

import pytest

from account_manager.facade import StoreFacade
from account_manager.membership import engine
from account_manager.models.store import Account, Store


NOW = 1_700_000_000_000


class FakeClock:
    """Deterministic clock: every call advances by one millisecond."""

    def __init__(self, start: int = NOW):
        self.current = start

    def __call__(self) -> int:
        self.current += 1
        return self.current


class SequentialIds:
    """Deterministic ids: acc-1, acc-2, grp-3, ..."""

    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self, prefix: str) -> str:
        return f"{prefix}-{next(self._counter)}"


def make_account(account_id: str, login: str, password: str = "secret", **extra) -> Account:
    return Account(
        id=account_id,
        login=login,
        password=password,
        created_at=NOW,
        updated_at=NOW,
        **extra,
    )


def admin_count(group) -> int:
    return sum(1 for member in group.members if member.is_admin)


def assert_invariants(store: Store) -> None:
    """Membership invariants that must hold after every transition."""
    seen: dict[str, str] = {}
    for group in store.groups:
        assert admin_count(group) <= 1
        assert group.members == engine.sort_members(group.members)
        for member in group.members:
            assert member.account_id not in seen, (
                f"{member.account_id} is in {seen.get(member.account_id)} and {group.id}"
            )
            seen[member.account_id] = group.id


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ids() -> SequentialIds:
    return SequentialIds()


@pytest.fixture
def accounts_store() -> Store:
    """Four unassigned accounts."""
    return Store(
        accounts=(
            make_account("acc-a", "alice@example.com"),
            make_account("acc-b", "bob@example.com"),
            make_account("acc-c", "carol@example.com"),
            make_account("acc-d", "dave@example.com"),
        )
    )


@pytest.fixture
def facade(accounts_store, clock, ids) -> StoreFacade:
    return StoreFacade(accounts_store, clock=clock, id_factory=ids)
