"""Services package."""

from account_manager.services.storage import (
    AuditStorageInterface,
    CorruptDataError,
    InMemoryAuditStorage,
    InMemoryStoreStorage,
    JsonFileStoreStorage,
    JsonLinesAuditStorage,
    StoreStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "CorruptDataError",
    "InMemoryAuditStorage",
    "InMemoryStoreStorage",
    "JsonFileStoreStorage",
    "JsonLinesAuditStorage",
    "StoreStorageInterface",
]
