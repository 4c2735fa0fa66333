"""Family group membership package."""

from account_manager.membership.engine import (
    add_member,
    assign_admin,
    create_group,
    delete_group,
    find_group_of_account,
    group_admin,
    remove_account_everywhere,
    remove_member,
    sort_members,
)

__all__ = [
    "add_member",
    "assign_admin",
    "create_group",
    "delete_group",
    "find_group_of_account",
    "group_admin",
    "remove_account_everywhere",
    "remove_member",
    "sort_members",
]
