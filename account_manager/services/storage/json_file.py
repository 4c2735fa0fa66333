"""
Local JSON File Storage Implementation

DESIGN DECISION: The whole Store lives in ONE pretty-printed JSON document
in the app data directory because:
1. The data set is small (a personal account list)
2. The user can inspect or back up the file by hand
3. Whole-snapshot writes match the "snapshot is the unit of persistence" rule

Writes go to a temp file next to the target and are moved into place with
``os.replace``, so a crash mid-write never leaves a truncated data file.
Transient OS errors are retried with tenacity (asyncio backoff, so the
event loop keeps running between attempts) before surfacing as
PersistenceError.

The audit trail is a separate JSON-lines file, one event per line.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from account_manager.config import get_settings
from account_manager.errors import PersistenceError
from account_manager.models.audit import AuditEvent
from account_manager.models.store import Store
from account_manager.normalize import normalize_payload, normalize_store
from account_manager.services.storage.interface import (
    AuditStorageInterface,
    CorruptDataError,
    StoreStorageInterface,
)


logger = structlog.get_logger(__name__)


def _write_atomically(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temp file + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class JsonFileStoreStorage(StoreStorageInterface):
    """
    Store snapshot persisted as a single JSON file.

    Loading a missing or blank file yields the empty default Store.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        max_write_attempts: Optional[int] = None,
    ):
        settings = get_settings().storage
        self._path = Path(path) if path is not None else settings.data_file_path
        self._max_write_attempts = max_write_attempts or settings.max_write_attempts

    @property
    def path(self) -> Path:
        return self._path

    def describe_location(self) -> Optional[str]:
        return str(self._path)

    def _read_text(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read data file ({self._path}): {e}")

    async def load(self) -> Store:
        """Load and normalize the snapshot on disk."""
        raw = self._read_text()
        if raw is None or not raw.strip():
            logger.info("store_file_missing_or_empty", path=str(self._path))
            return Store.empty()

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"Failed to parse data file ({self._path}): {e}")

        if not isinstance(payload, dict):
            raise CorruptDataError(f"Data file is not a JSON object: {self._path}")

        try:
            store = normalize_payload(payload)
        except PydanticValidationError as e:
            raise CorruptDataError(f"Data file holds invalid records ({self._path}): {e}")

        logger.info(
            "store_loaded",
            path=str(self._path),
            accounts=len(store.accounts),
            groups=len(store.groups),
        )
        return store

    async def save(self, store: Store) -> Store:
        """Normalize, write atomically, and return what was written."""
        normalized = normalize_store(store)
        text = json.dumps(normalized.to_json_dict(), ensure_ascii=False, indent=2)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_write_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception_type(OSError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    _write_atomically(self._path, text)
        except OSError as e:
            logger.error("store_save_failed", path=str(self._path), error=str(e))
            raise PersistenceError(f"Failed to write data file ({self._path}): {e}")

        logger.info(
            "store_saved",
            path=str(self._path),
            accounts=len(normalized.accounts),
            groups=len(normalized.groups),
        )
        return normalized


class JsonLinesAuditStorage(AuditStorageInterface):
    """
    JSON-lines implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else get_settings().storage.audit_file_path

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    async def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def _read_events(self) -> list[AuditEvent]:
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Failed to read audit log ({self._path}): {e}")

        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(AuditEvent.model_validate_json(line))
            except PydanticValidationError:
                continue  # Skip malformed lines
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            await self._append_line(event.model_dump_json())
            return True
        except OSError as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_write_failed", path=str(self._path), error=str(e))
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._read_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
