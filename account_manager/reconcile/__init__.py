"""Import reconciliation package."""

from account_manager.reconcile.reconciler import (
    MERGEABLE_FIELDS,
    ReconcileResult,
    merge_note,
    reconcile,
)

__all__ = ["MERGEABLE_FIELDS", "ReconcileResult", "merge_note", "reconcile"]
