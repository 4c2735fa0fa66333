"""
Error Taxonomy for Account Manager

DESIGN DECISION: Every rejected action raises one of a small set of errors.
The caller (UI, CLI, tests) decides how to present them:

- ValidationError: a required field is missing or a reference is unknown
- PreconditionError: the action is not allowed in the current state
- PersistenceError: the storage collaborator failed to load or save

None of these ever leave a half-applied snapshot behind.
Malformed import lines are NOT errors - they are counted and skipped.
"""

from typing import Optional


class AccountManagerError(Exception):
    """Base exception for all account manager errors."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class ValidationError(AccountManagerError):
    """Empty/missing required field or unknown reference."""
    pass


class PreconditionError(AccountManagerError):
    """Operation not allowed in the current state."""
    pass


class PersistenceError(AccountManagerError):
    """Loading or saving a snapshot failed."""
    pass
