"""
Membership Engine

Enforces the family group invariants across every group transition:

1. A group has AT MOST one admin (zero only when it has no members)
2. An account belongs to AT MOST one group at a time, across the store
3. Member lists are canonical: admin first, then members by accountId

DESIGN DECISION: Every transition is a pure ``Store -> Store`` function.
- Validation happens before anything is built, so a raised error means
  the caller's snapshot is untouched
- Groups a transition does not touch are returned as the SAME objects,
  so callers can detect changes with ``is``
- Affected groups are re-sorted and get a fresh ``updatedAt``

Only ``remove_account_everywhere`` (used when an account is deleted) can
drop an admin membership. ``remove_member`` refuses to.
"""

from collections.abc import Iterable
from typing import Optional

from account_manager.errors import PreconditionError, ValidationError
from account_manager.models.store import FamilyGroup, Member, MemberRole, Store


def sort_members(members: Iterable[Member]) -> tuple[Member, ...]:
    """Canonical member order: admin first, then by accountId."""
    return tuple(
        sorted(members, key=lambda member: (member.role.priority, member.account_id))
    )


def group_admin(group: FamilyGroup) -> Optional[Member]:
    return group.admin


def find_group_of_account(store: Store, account_id: str) -> Optional[FamilyGroup]:
    """The group holding ``account_id``, if any."""
    for group in store.groups:
        if group.has_member(account_id):
            return group
    return None


def _with_members(group: FamilyGroup, members: Iterable[Member], now: int) -> FamilyGroup:
    return group.model_copy(
        update={"members": sort_members(members), "updated_at": now}
    )


def _strip_account(
    groups: Iterable[FamilyGroup],
    account_id: str,
    now: int,
) -> list[FamilyGroup]:
    """Remove ``account_id`` from every group (exclusivity)."""
    result = []
    for group in groups:
        if not group.has_member(account_id):
            result.append(group)
            continue
        remaining = [m for m in group.members if m.account_id != account_id]
        result.append(_with_members(group, remaining, now))
    return result


def _require_group(store: Store, group_id: str) -> FamilyGroup:
    if not group_id:
        raise ValidationError("Family group is required", field="group_id")
    group = store.get_group(group_id)
    if group is None:
        raise ValidationError(f"Family group not found: {group_id}", field="group_id")
    return group


def _require_account(store: Store, account_id: str, field: str = "account_id") -> None:
    if not account_id:
        raise ValidationError("Account is required", field=field)
    if not store.has_account(account_id):
        raise ValidationError(f"Account not found: {account_id}", field=field)


def _replace_group(
    groups: Iterable[FamilyGroup],
    group_id: str,
    members: Iterable[Member],
    now: int,
) -> tuple[FamilyGroup, ...]:
    result = []
    for group in groups:
        if group.id == group_id:
            result.append(_with_members(group, members, now))
        else:
            result.append(group)
    return tuple(result)


# =============================================================================
# TRANSITIONS
# =============================================================================

def create_group(
    store: Store,
    *,
    group_id: str,
    name: str,
    note: str,
    admin_account_id: str,
    now: int,
) -> Store:
    """
    Create a group whose only member is its admin.

    The admin is first removed from whatever group currently holds it.

    Raises:
        ValidationError: Empty name, empty or unknown admin
    """
    name = (name or "").strip()
    note = (note or "").strip()
    admin_account_id = (admin_account_id or "").strip()

    if not name:
        raise ValidationError("Family group name cannot be empty", field="name")
    _require_account(store, admin_account_id, field="admin_account_id")

    groups = _strip_account(store.groups, admin_account_id, now)
    groups.append(
        FamilyGroup(
            id=group_id,
            name=name,
            note=note,
            members=(Member(account_id=admin_account_id, role=MemberRole.ADMIN),),
            created_at=now,
            updated_at=now,
        )
    )
    return store.model_copy(update={"groups": tuple(groups)})


def assign_admin(
    store: Store,
    *,
    group_id: str,
    account_id: str,
    now: int,
) -> Store:
    """
    Make ``account_id`` the admin of ``group_id``.

    The account leaves every other group. A different previous admin is
    dropped from the group entirely (not demoted). Calling this again with
    the same arguments returns the store unchanged.

    Raises:
        ValidationError: Unknown group, empty or unknown account
    """
    account_id = (account_id or "").strip()
    target = _require_group(store, group_id)
    _require_account(store, account_id)

    current = target.admin
    if current is not None and current.account_id == account_id:
        holder = find_group_of_account(store, account_id)
        if holder is not None and holder.id == target.id:
            return store

    groups = _strip_account(store.groups, account_id, now)
    members = []
    for group in groups:
        if group.id == group_id:
            members = [m for m in group.members if not m.is_admin]
            break
    members.append(Member(account_id=account_id, role=MemberRole.ADMIN))

    return store.model_copy(
        update={"groups": _replace_group(groups, group_id, members, now)}
    )


def add_member(
    store: Store,
    *,
    group_id: str,
    account_id: str,
    now: int,
) -> Store:
    """
    Add ``account_id`` to ``group_id`` as a plain member.

    The account leaves any other group first. Adding a current plain
    member of the same group returns the store unchanged.

    Raises:
        ValidationError: Unknown group, empty or unknown account,
            or the account is the group's admin
        PreconditionError: The group has no admin
    """
    account_id = (account_id or "").strip()
    target = _require_group(store, group_id)

    admin = target.admin
    if admin is None:
        raise PreconditionError(
            "This family group has no admin; assign an admin first",
            field="group_id",
        )

    _require_account(store, account_id)
    if account_id == admin.account_id:
        raise ValidationError(
            "The admin cannot also be added as a plain member",
            field="account_id",
        )

    if target.has_member(account_id):
        return store

    groups = _strip_account(store.groups, account_id, now)
    members = []
    for group in groups:
        if group.id == group_id:
            members = list(group.members)
            break
    members.append(Member(account_id=account_id, role=MemberRole.MEMBER))

    return store.model_copy(
        update={"groups": _replace_group(groups, group_id, members, now)}
    )


def remove_member(
    store: Store,
    *,
    group_id: str,
    account_id: str,
    now: int,
) -> Store:
    """
    Remove a plain member from a group.

    No-op if ``account_id`` is not a member of the group.

    Raises:
        ValidationError: Unknown group
        PreconditionError: The member is the admin (replace it with
            assign_admin first)
    """
    target = _require_group(store, group_id)
    member = target.find_member((account_id or "").strip())
    if member is None:
        return store

    if member.role is MemberRole.ADMIN:
        raise PreconditionError(
            "The admin cannot be removed directly; assign a new admin first",
            field="account_id",
        )
    elif member.role is MemberRole.MEMBER:
        members = [m for m in target.members if m.account_id != member.account_id]
    else:  # pragma: no cover - closed enum
        raise ValueError(f"Unhandled role: {member.role}")

    return store.model_copy(
        update={"groups": _replace_group(store.groups, group_id, members, now)}
    )


def remove_account_everywhere(store: Store, *, account_id: str, now: int) -> Store:
    """Strip every membership of ``account_id``, whatever its role."""
    groups = _strip_account(store.groups, account_id, now)
    if all(new is old for new, old in zip(groups, store.groups)):
        return store
    return store.model_copy(update={"groups": tuple(groups)})


def delete_group(store: Store, *, group_id: str) -> Store:
    """Remove a group and its memberships. No-op if it does not exist."""
    if store.get_group(group_id) is None:
        return store
    return store.model_copy(
        update={"groups": tuple(g for g in store.groups if g.id != group_id)}
    )
