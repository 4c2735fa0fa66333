"""Read-side query package."""

from account_manager.queries.executor import (
    StoreSummary,
    account_group_labels,
    search_accounts,
    summarize_store,
)

__all__ = ["StoreSummary", "account_group_labels", "search_accounts", "summarize_store"]
