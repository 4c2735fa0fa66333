"""
Core Data Models for Account Manager

These models define the strict schemas for the local store:
accounts, family groups and the versioned Store snapshot.

DESIGN DECISION: Every model is frozen. A mutation never edits a model in
place - it builds a new one (model_copy / constructor). This is what lets the
membership engine return unaffected groups unchanged (same object) so callers
can detect changes with an identity check.

Persisted form uses camelCase keys (accountId, createdAt, ...) and integer
epoch-millisecond timestamps.
"""

import time
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


DATA_VERSION = 1


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def new_id(prefix: str) -> str:
    """Opaque identity: ``<prefix>-<uuid4>``."""
    return f"{prefix}-{uuid4()}"


def normalize_login(login: str) -> str:
    """Comparison key for a login (trimmed, lower-cased)."""
    return login.strip().lower()


class _StoreModel(BaseModel):
    """Shared config: immutable, camelCase aliases, whitespace stripped."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_json_dict(self) -> dict:
        """Dump in persisted (camelCase) form."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# ENUMS
# =============================================================================

class MemberRole(str, Enum):
    """
    Role of an account inside a family group.

    DESIGN DECISION: a closed set. Older data files may contain free-form
    role strings; those are coerced by ``MemberRole.coerce``.
    """
    ADMIN = "admin"
    MEMBER = "member"

    @classmethod
    def coerce(cls, raw: object) -> "MemberRole":
        if isinstance(raw, MemberRole):
            return raw
        value = str(raw or "").strip().lower()
        if value in ("admin", "manager", "owner"):
            return cls.ADMIN
        return cls.MEMBER

    @property
    def priority(self) -> int:
        """Sort priority: admin first."""
        if self is MemberRole.ADMIN:
            return 0
        return 1

    @property
    def label(self) -> str:
        if self is MemberRole.ADMIN:
            return "Admin"
        return "Member"


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountDraft(_StoreModel):
    """
    The editable fields of an account.

    Used as input for create/update. Identity and timestamps are
    assigned by the store facade, never by the caller.
    """

    login: str = Field(
        ...,
        min_length=1,
        description="Login (unique, case-insensitive)"
    )
    password: str = Field(
        ...,
        min_length=1,
        description="Account password"
    )
    authenticator_token: str = ""
    app_password: str = ""
    authenticator_url: str = ""
    messages_url: str = ""
    note: str = ""


class Account(_StoreModel):
    """
    A stored credential record.

    CRITICAL: ``id`` never changes once assigned. ``login`` is the business
    key used by bulk import to decide between create and update.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque stable identity"
    )
    login: str = Field(
        ...,
        min_length=1,
        description="Login (unique, case-insensitive)"
    )
    password: str = Field(
        ...,
        min_length=1,
        description="Account password"
    )
    authenticator_token: str = ""
    app_password: str = ""
    authenticator_url: str = ""
    messages_url: str = ""
    note: str = ""
    created_at: int = Field(
        default=0,
        description="Creation time (epoch ms)"
    )
    updated_at: int = Field(
        default=0,
        description="Last update time (epoch ms)"
    )

    @property
    def login_key(self) -> str:
        return normalize_login(self.login)

    @classmethod
    def from_draft(cls, draft: AccountDraft, account_id: str, now: int) -> "Account":
        return cls(
            id=account_id,
            created_at=now,
            updated_at=now,
            **draft.model_dump(),
        )

    def with_draft(self, draft: AccountDraft, now: int) -> "Account":
        """Replace every editable field, keeping identity and createdAt."""
        return self.model_copy(update={**draft.model_dump(), "updated_at": now})


# =============================================================================
# FAMILY GROUPS
# =============================================================================

class Member(_StoreModel):
    """A (accountId, role) pair inside a family group."""

    account_id: str = Field(..., min_length=1)
    role: MemberRole = MemberRole.MEMBER

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, v: object) -> MemberRole:
        return MemberRole.coerce(v)

    @property
    def is_admin(self) -> bool:
        return self.role is MemberRole.ADMIN


class FamilyGroup(_StoreModel):
    """
    A named group of accounts with role-tagged membership.

    Invariants enforced by the membership engine (not here):
    at most one admin, members sorted admin-first then by accountId.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    note: str = ""
    members: tuple[Member, ...] = ()
    created_at: int = 0
    updated_at: int = 0

    @property
    def admin(self) -> Optional[Member]:
        for member in self.members:
            if member.is_admin:
                return member
        return None

    def find_member(self, account_id: str) -> Optional[Member]:
        for member in self.members:
            if member.account_id == account_id:
                return member
        return None

    def has_member(self, account_id: str) -> bool:
        return self.find_member(account_id) is not None


# =============================================================================
# STORE SNAPSHOT
# =============================================================================

class Store(_StoreModel):
    """
    Versioned root aggregate - the single unit of persistence.

    ``version`` is reserved for future migrations.
    """

    version: int = DATA_VERSION
    accounts: tuple[Account, ...] = ()
    groups: tuple[FamilyGroup, ...] = ()

    @classmethod
    def empty(cls) -> "Store":
        return cls(version=DATA_VERSION, accounts=(), groups=())

    def get_account(self, account_id: str) -> Optional[Account]:
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def has_account(self, account_id: str) -> bool:
        return self.get_account(account_id) is not None

    def get_group(self, group_id: str) -> Optional[FamilyGroup]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def find_account_by_login(self, login: str) -> Optional[Account]:
        key = normalize_login(login)
        for account in self.accounts:
            if account.login_key == key:
                return account
        return None


# =============================================================================
# IMPORT MODELS
# =============================================================================

class ImportCandidate(BaseModel):
    """
    One account record parsed from pasted text.

    This is PROPOSED data. It becomes an Account only through the
    import reconciler.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    login: str
    password: str
    authenticator_token: str = ""
    app_password: str = ""
    authenticator_url: str = ""
    messages_url: str = ""
    extra: str = Field(
        default="",
        description="Trailing fields beyond the sixth, destined for the note"
    )

    @property
    def login_key(self) -> str:
        return normalize_login(self.login)


class SkippedRecord(BaseModel):
    """A record the parser could not turn into a candidate."""
    model_config = ConfigDict(frozen=True)

    line_number: int = Field(..., ge=1, description="First line of the record (1-based)")
    reason: str
    field_count: int = Field(default=0, ge=0)


class ImportResult(BaseModel):
    """
    Result of a bulk import, suitable for user-facing reporting.

    ``imported`` counts valid records only (created + updated).
    """

    imported: int = Field(ge=0)
    created: int = Field(ge=0)
    updated: int = Field(ge=0)
    skipped: int = Field(default=0, ge=0)
    data: Store
