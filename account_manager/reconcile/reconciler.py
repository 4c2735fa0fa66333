"""
Import Reconciler

Merges parsed candidates into the existing account collection.

RULES:
1. Match by normalized login (trimmed, lower-cased)
2. Match found → UPDATE: a field is overwritten only when the candidate
   supplies a non-empty value; ``id``, ``createdAt`` and ``login`` are kept
3. No match → CREATE with a fresh id, both timestamps = operation time
4. Candidates are applied in input order, so when one batch repeats a
   login the later record wins
5. Groups are never touched - imported accounts start unassigned

The reconciler is pure: it returns a new account tuple and never mutates
its inputs.
"""

from collections.abc import Callable, Iterable

from pydantic import BaseModel, Field

from account_manager.models.store import Account, ImportCandidate


# Fields an import is allowed to overwrite
MERGEABLE_FIELDS = (
    "password",
    "authenticator_token",
    "app_password",
    "authenticator_url",
    "messages_url",
)


class ReconcileResult(BaseModel):
    """Accounts after the merge plus the counters shown to the user."""

    accounts: tuple[Account, ...]
    created: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)

    @property
    def imported(self) -> int:
        return self.created + self.updated


def merge_note(existing: str, extra: str) -> str:
    """Append ``extra`` to a note unless the note already contains it."""
    existing = existing.strip()
    extra = extra.strip()
    if not extra:
        return existing
    if not existing:
        return extra
    if extra in existing:
        return existing
    return f"{existing}\n{extra}"


def merge_candidate(account: Account, candidate: ImportCandidate, now: int) -> Account:
    """Overlay the non-empty candidate fields onto an existing account."""
    changes: dict = {
        name: getattr(candidate, name)
        for name in MERGEABLE_FIELDS
        if getattr(candidate, name)
    }
    changes["note"] = merge_note(account.note, candidate.extra)
    changes["updated_at"] = now
    return account.model_copy(update=changes)


def account_from_candidate(candidate: ImportCandidate, account_id: str, now: int) -> Account:
    return Account(
        id=account_id,
        login=candidate.login,
        password=candidate.password,
        authenticator_token=candidate.authenticator_token,
        app_password=candidate.app_password,
        authenticator_url=candidate.authenticator_url,
        messages_url=candidate.messages_url,
        note=candidate.extra,
        created_at=now,
        updated_at=now,
    )


def reconcile(
    existing_accounts: Iterable[Account],
    candidates: Iterable[ImportCandidate],
    *,
    now: int,
    id_factory: Callable[[], str],
) -> ReconcileResult:
    """
    Merge ``candidates`` into ``existing_accounts``.

    Args:
        existing_accounts: Current accounts (not modified)
        candidates: Valid parsed records, in input order
        now: Operation time (epoch ms) used for every touched account
        id_factory: Produces a fresh account id for each creation

    Returns:
        ReconcileResult with existing accounts in their original order
        and new accounts appended in creation order
    """
    accounts = list(existing_accounts)
    index_by_login: dict[str, int] = {}
    for position, account in enumerate(accounts):
        # First account wins if the collection somehow holds duplicates
        index_by_login.setdefault(account.login_key, position)

    created = 0
    updated = 0

    for candidate in candidates:
        key = candidate.login_key
        position = index_by_login.get(key)

        if position is not None:
            accounts[position] = merge_candidate(accounts[position], candidate, now)
            updated += 1
        else:
            accounts.append(account_from_candidate(candidate, id_factory(), now))
            index_by_login[key] = len(accounts) - 1
            created += 1

    return ReconcileResult(
        accounts=tuple(accounts),
        created=created,
        updated=updated,
    )
