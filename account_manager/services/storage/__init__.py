"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The app uses the local JSON file backend; tests use the in-memory one.
"""

from account_manager.services.storage.interface import (
    AuditStorageInterface,
    CorruptDataError,
    StoreStorageInterface,
)
from account_manager.services.storage.json_file import (
    JsonFileStoreStorage,
    JsonLinesAuditStorage,
)
from account_manager.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryStoreStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "StoreStorageInterface",
    # Exceptions
    "CorruptDataError",
    # Local file implementation
    "JsonFileStoreStorage",
    "JsonLinesAuditStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryStoreStorage",
]
