"""
Snapshot Normalization

Turns whatever was found on disk (or handed to ``save``) into a canonical
Store. Applied by the storage layer on every load and save.

DESIGN DECISION: Normalization works on the raw JSON-like payload, BEFORE
model validation. Old or hand-edited files may hold records the strict
models would reject (empty login, loose role strings, duplicate members),
and we want to repair them rather than refuse to start.

Normalization is idempotent: normalizing a canonical snapshot returns an
equal snapshot with the same ids and timestamps. That is what makes
``save(load())`` a no-op.
"""

from collections.abc import Callable
from typing import Any, Optional

import structlog

from account_manager.membership.engine import sort_members
from account_manager.models.store import (
    DATA_VERSION,
    Account,
    FamilyGroup,
    Member,
    MemberRole,
    Store,
    new_id,
    normalize_login,
    now_ms,
)


logger = structlog.get_logger(__name__)

UNNAMED_GROUP = "Unnamed family group"

ACCOUNT_TEXT_FIELDS = (
    "login",
    "password",
    "authenticatorToken",
    "appPassword",
    "authenticatorUrl",
    "messagesUrl",
    "note",
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _timestamp(value: Any, fallback: int) -> int:
    try:
        stamp = int(value)
    except (TypeError, ValueError, OverflowError):
        return fallback
    return stamp if stamp > 0 else fallback


def _normalize_accounts(
    raw_accounts: list,
    now: int,
    id_factory: Callable[[str], str],
) -> list[Account]:
    # Most recently updated record wins when two share a login
    records = [r for r in raw_accounts if isinstance(r, dict)]
    records.sort(key=lambda r: _timestamp(r.get("updatedAt"), now), reverse=True)

    seen: set[str] = set()
    accounts = []
    for record in records:
        fields = {name: _text(record.get(name)) for name in ACCOUNT_TEXT_FIELDS}
        if not fields["login"]:
            continue
        if not fields["password"]:
            logger.warning("account_dropped_without_password", login=fields["login"])
            continue

        key = normalize_login(fields["login"])
        if key in seen:
            continue
        seen.add(key)

        accounts.append(
            Account.model_validate({
                **fields,
                "id": _text(record.get("id")) or id_factory("acc"),
                "createdAt": _timestamp(record.get("createdAt"), now),
                "updatedAt": _timestamp(record.get("updatedAt"), now),
            })
        )

    accounts.sort(key=lambda account: account.login_key)
    return accounts


def _normalize_members(
    raw_members: Any,
    known_accounts: set[str],
    assigned: set[str],
) -> tuple[Member, ...]:
    candidates = []
    seen: set[str] = set()
    for raw in raw_members if isinstance(raw_members, list) else []:
        if not isinstance(raw, dict):
            continue
        account_id = _text(raw.get("accountId"))
        if not account_id or account_id not in known_accounts or account_id in seen:
            continue
        seen.add(account_id)
        candidates.append(Member(account_id=account_id, role=MemberRole.coerce(raw.get("role"))))

    # Stable sort keeps the first admin listed ahead of later ones
    candidates.sort(key=lambda member: member.role.priority)

    members = []
    has_admin = False
    for member in candidates:
        if member.account_id in assigned:
            continue
        if member.is_admin:
            if has_admin:
                continue
            has_admin = True
        assigned.add(member.account_id)
        members.append(member)

    return sort_members(members)


def _normalize_groups(
    raw_groups: list,
    known_accounts: set[str],
    now: int,
    id_factory: Callable[[str], str],
) -> list[FamilyGroup]:
    assigned: set[str] = set()
    groups = []
    for record in raw_groups:
        if not isinstance(record, dict):
            continue
        groups.append(
            FamilyGroup(
                id=_text(record.get("id")) or id_factory("grp"),
                name=_text(record.get("name")) or UNNAMED_GROUP,
                note=_text(record.get("note")),
                members=_normalize_members(record.get("members"), known_accounts, assigned),
                created_at=_timestamp(record.get("createdAt"), now),
                updated_at=_timestamp(record.get("updatedAt"), now),
            )
        )

    groups.sort(key=lambda group: group.name.lower())
    return groups


def normalize_payload(
    payload: Optional[dict],
    *,
    now: Optional[int] = None,
    id_factory: Callable[[str], str] = new_id,
) -> Store:
    """
    Build a canonical Store from a raw JSON-like payload.

    Args:
        payload: Decoded JSON document (camelCase keys) or None
        now: Time used to fill missing timestamps (default: current time)
        id_factory: Produces ids for records that lack one

    Returns:
        A Store satisfying every membership invariant
    """
    if not payload:
        return Store.empty()

    now = now if now is not None else now_ms()
    raw_accounts = payload.get("accounts")
    raw_groups = payload.get("groups")

    accounts = _normalize_accounts(
        raw_accounts if isinstance(raw_accounts, list) else [], now, id_factory
    )
    known_accounts = {account.id for account in accounts}
    groups = _normalize_groups(
        raw_groups if isinstance(raw_groups, list) else [], known_accounts, now, id_factory
    )

    return Store(version=DATA_VERSION, accounts=tuple(accounts), groups=tuple(groups))


def normalize_store(store: Store, *, now: Optional[int] = None) -> Store:
    """Normalize an in-memory snapshot (round-trips through its JSON form)."""
    return normalize_payload(store.to_json_dict(), now=now)
