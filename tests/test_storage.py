"""
Tests for snapshot normalization and the local storage backends.

File tests only ever touch pytest's tmp_path.
"""

import asyncio
import json
from uuid import uuid4

import pytest

from account_manager.errors import PersistenceError
from account_manager.models.audit import AuditEventBuilder
from account_manager.models.store import Member, MemberRole, Store
from account_manager.normalize import UNNAMED_GROUP, normalize_payload, normalize_store
from account_manager.services.storage import (
    CorruptDataError,
    InMemoryAuditStorage,
    InMemoryStoreStorage,
    JsonFileStoreStorage,
    JsonLinesAuditStorage,
)
from account_manager.services.storage import json_file

from conftest import NOW, SequentialIds, assert_invariants, make_account


def _account(account_id, login, password="pw", updated_at=NOW):
    return {
        "id": account_id,
        "login": login,
        "password": password,
        "createdAt": NOW,
        "updatedAt": updated_at,
    }


async def _count_ticks_during(coro) -> tuple[int, object]:
    """Run ``coro`` next to a 10ms ticker; return (ticks, coro outcome)."""
    ticks = 0
    done = asyncio.Event()

    async def ticker():
        nonlocal ticks
        while not done.is_set():
            await asyncio.sleep(0.01)
            ticks += 1

    ticker_task = asyncio.create_task(ticker())
    try:
        outcome = await coro
    except Exception as e:
        outcome = e
    finally:
        done.set()
        await ticker_task
    return ticks, outcome


class TestNormalizePayload:
    """Tests for repairing raw payloads into canonical snapshots."""

    def test_empty_payload_is_empty_store(self):
        """Test that a missing or empty document yields the default Store."""
        assert normalize_payload(None) == Store.empty()
        assert normalize_payload({}) == Store.empty()

    def test_drops_accounts_without_login_or_password(self):
        """Test that records lacking login or password are dropped."""
        store = normalize_payload({
            "accounts": [
                _account("acc-1", "a@x.com"),
                _account("acc-2", "  ", "pw"),
                _account("acc-3", "c@x.com", ""),
            ],
        }, now=NOW)
        assert [a.id for a in store.accounts] == ["acc-1"]

    def test_duplicate_login_keeps_most_recent(self):
        """Test dedupe by login keeps the most recently updated record."""
        store = normalize_payload({
            "accounts": [
                _account("acc-old", "A@x.com", "old", updated_at=NOW),
                _account("acc-new", "a@X.com", "new", updated_at=NOW + 10),
            ],
        }, now=NOW)
        [account] = store.accounts
        assert account.id == "acc-new"
        assert account.password == "new"

    def test_accounts_sorted_by_login(self):
        """Test accounts come back ordered by lower-cased login."""
        store = normalize_payload({
            "accounts": [
                _account("acc-1", "zed@x.com"),
                _account("acc-2", "Amy@x.com"),
                _account("acc-3", "bob@x.com"),
            ],
        }, now=NOW)
        assert [a.login for a in store.accounts] == ["Amy@x.com", "bob@x.com", "zed@x.com"]

    def test_fills_missing_ids_and_timestamps(self):
        """Test missing ids, bad timestamps and empty group names are filled."""
        store = normalize_payload(
            {
                "accounts": [{"login": "a@x.com", "password": "pw", "createdAt": "bogus"}],
                "groups": [{"name": "", "members": []}],
            },
            now=NOW,
            id_factory=SequentialIds(),
        )
        assert store.accounts[0].id == "acc-1"
        assert store.accounts[0].created_at == NOW
        assert store.groups[0].id == "grp-2"
        assert store.groups[0].name == UNNAMED_GROUP

    def test_infinite_timestamp_falls_back(self):
        """Test that an out-of-range timestamp is replaced, not raised."""
        store = normalize_payload({
            "accounts": [{
                "id": "acc-1",
                "login": "a@x.com",
                "password": "pw",
                "createdAt": float("inf"),
                "updatedAt": float("-inf"),
            }],
        }, now=NOW)
        assert store.accounts[0].created_at == NOW
        assert store.accounts[0].updated_at == NOW

    def test_repairs_group_members(self):
        """Test unknown, duplicate and surplus-admin members are removed."""
        store = normalize_payload({
            "accounts": [
                _account("acc-1", "a@x.com"),
                _account("acc-2", "b@x.com"),
                _account("acc-3", "c@x.com"),
            ],
            "groups": [{
                "id": "grp-1",
                "name": "Fam",
                "members": [
                    {"accountId": "acc-3", "role": "member"},
                    {"accountId": "acc-1", "role": "Owner"},
                    {"accountId": "acc-2", "role": "admin"},
                    {"accountId": "acc-3", "role": "member"},
                    {"accountId": "acc-gone", "role": "member"},
                ],
            }],
        }, now=NOW)
        [group] = store.groups
        assert group.members == (
            Member(account_id="acc-1", role=MemberRole.ADMIN),
            Member(account_id="acc-3", role=MemberRole.MEMBER),
        )

    def test_account_kept_in_first_group_only(self):
        """Test cross-group exclusivity is restored in group order."""
        store = normalize_payload({
            "accounts": [_account("acc-1", "a@x.com"), _account("acc-2", "b@x.com")],
            "groups": [
                {"id": "grp-1", "name": "Alpha", "members": [{"accountId": "acc-1", "role": "admin"}]},
                {"id": "grp-2", "name": "Beta", "members": [
                    {"accountId": "acc-2", "role": "admin"},
                    {"accountId": "acc-1", "role": "member"},
                ]},
            ],
        }, now=NOW)
        assert store.get_group("grp-1").has_member("acc-1")
        assert not store.get_group("grp-2").has_member("acc-1")
        assert_invariants(store)

    def test_groups_sorted_by_name(self):
        """Test groups come back ordered by lower-cased name."""
        store = normalize_payload({
            "groups": [
                {"id": "grp-1", "name": "beta"},
                {"id": "grp-2", "name": "Alpha"},
            ],
        }, now=NOW)
        assert [g.name for g in store.groups] == ["Alpha", "beta"]

    def test_normalize_is_idempotent(self):
        """Test normalizing a canonical snapshot changes nothing."""
        once = normalize_payload({
            "accounts": [_account("acc-2", "b@x.com"), _account("acc-1", "a@x.com")],
            "groups": [{"id": "grp-1", "name": "Fam", "note": " n ", "createdAt": NOW, "updatedAt": NOW,
                        "members": [{"accountId": "acc-2"}, {"accountId": "acc-1", "role": "admin"}]}],
        }, now=NOW)
        assert normalize_store(once, now=NOW + 99) == once


class TestJsonFileStoreStorage:
    """Tests for the single-file JSON backend."""

    @pytest.fixture
    def storage(self, tmp_path):
        return JsonFileStoreStorage(path=tmp_path / "data" / "store.json", max_write_attempts=1)

    @pytest.mark.asyncio
    async def test_missing_file_loads_empty_store(self, storage):
        """Test that no data file means an empty Store."""
        assert await storage.load() == Store.empty()

    @pytest.mark.asyncio
    async def test_blank_file_loads_empty_store(self, storage):
        """Test that a whitespace-only data file means an empty Store."""
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("  \n", encoding="utf-8")
        assert await storage.load() == Store.empty()

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, storage):
        """Test that unparseable JSON surfaces as CorruptDataError."""
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("{not json", encoding="utf-8")
        with pytest.raises(CorruptDataError):
            await storage.load()

    @pytest.mark.asyncio
    async def test_non_object_document_raises(self, storage):
        """Test that a JSON array is rejected as a PersistenceError."""
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(PersistenceError):
            await storage.load()

    @pytest.mark.asyncio
    async def test_infinity_timestamp_loads(self, storage):
        """Test that a hand-edited ``Infinity`` timestamp does not break loading."""
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text(
            '{"version": 1, "accounts": [{"id": "acc-1", "login": "a@x.com", '
            '"password": "pw", "createdAt": Infinity, "updatedAt": 5}], "groups": []}',
            encoding="utf-8",
        )
        store = await storage.load()
        [account] = store.accounts
        assert account.created_at > 0
        assert account.updated_at == 5

    @pytest.mark.asyncio
    async def test_save_writes_camel_case_json(self, storage, accounts_store):
        """Test the on-disk document uses camelCase keys."""
        saved = await storage.save(accounts_store)
        document = json.loads(storage.path.read_text(encoding="utf-8"))
        assert document["version"] == 1
        assert document["accounts"][0]["createdAt"] == NOW
        assert "authenticatorToken" in document["accounts"][0]
        assert len(saved.accounts) == 4

    @pytest.mark.asyncio
    async def test_save_returns_normalized_snapshot(self, storage):
        """Test save hands back the canonical form it wrote."""
        store = Store(accounts=(
            make_account("acc-2", "zed@x.com"),
            make_account("acc-1", "amy@x.com"),
        ))
        saved = await storage.save(store)
        assert [a.login for a in saved.accounts] == ["amy@x.com", "zed@x.com"]

    @pytest.mark.asyncio
    async def test_load_save_round_trip_is_noop(self, storage, accounts_store):
        """Test save(load()) leaves the file byte-identical."""
        await storage.save(accounts_store)
        first = storage.path.read_text(encoding="utf-8")
        loaded = await storage.load()
        resaved = await storage.save(loaded)
        assert resaved == loaded
        assert storage.path.read_text(encoding="utf-8") == first

    @pytest.mark.asyncio
    async def test_write_failure_raises_persistence_error(self, tmp_path, accounts_store):
        """Test OS write errors are wrapped in PersistenceError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        storage = JsonFileStoreStorage(path=blocker / "store.json", max_write_attempts=1)
        with pytest.raises(PersistenceError):
            await storage.save(accounts_store)

    @pytest.mark.asyncio
    async def test_retry_backoff_does_not_block_event_loop(
        self, tmp_path, accounts_store, monkeypatch
    ):
        """Test other tasks keep running while a failing write is retried."""
        attempts = []

        def failing_write(path, text):
            attempts.append(path)
            raise OSError("disk unavailable")

        monkeypatch.setattr(json_file, "_write_atomically", failing_write)
        storage = JsonFileStoreStorage(path=tmp_path / "store.json", max_write_attempts=4)

        ticks, outcome = await _count_ticks_during(storage.save(accounts_store))

        assert isinstance(outcome, PersistenceError)
        assert len(attempts) == 4
        assert ticks >= 5

    def test_describe_location(self, storage):
        """Test the location is the data file path."""
        assert storage.describe_location().endswith("store.json")


class TestInMemoryStoreStorage:
    """Tests for the in-memory test double."""

    @pytest.mark.asyncio
    async def test_simulated_failures(self, accounts_store):
        """Test a simulated failure stores nothing and the next save works."""
        storage = InMemoryStoreStorage()
        storage.fail_next_save = True
        with pytest.raises(PersistenceError):
            await storage.save(accounts_store)
        assert storage.stored is None

        saved = await storage.save(accounts_store)
        assert storage.stored == saved
        assert storage.save_calls == 2


class TestAuditStorage:
    """Tests for audit log backends."""

    @pytest.mark.asyncio
    async def test_json_lines_append_and_read(self, tmp_path):
        """Test events are appended one per line and read back."""
        storage = JsonLinesAuditStorage(path=tmp_path / "audit.jsonl")
        first = AuditEventBuilder.group_created(
            group_id="grp-1",
            name="Fam",
            admin_account_id="acc-1",
            correlation_id=uuid4(),
        )
        second = AuditEventBuilder.member_added(
            group_id="grp-1",
            account_id="acc-2",
            correlation_id=first.correlation_id,
        )
        assert await storage.append_event(first)
        assert await storage.append_event(second)

        lines = (tmp_path / "audit.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2

        related = await storage.get_events_by_correlation_id(first.correlation_id)
        assert [e.event_id for e in related] == [first.event_id, second.event_id]

        recent = await storage.get_recent_events(limit=1)
        assert len(recent) == 1

    @pytest.mark.asyncio
    async def test_json_lines_skips_malformed_lines(self, tmp_path):
        """Test unreadable lines are skipped when reading."""
        path = tmp_path / "audit.jsonl"
        event = AuditEventBuilder.store_loaded(account_count=1, group_count=0)
        path.write_text("garbage\n" + event.model_dump_json() + "\n", encoding="utf-8")
        storage = JsonLinesAuditStorage(path=path)
        assert [e.event_id for e in await storage.get_recent_events()] == [event.event_id]

    @pytest.mark.asyncio
    async def test_failed_append_returns_false_without_blocking(self, tmp_path):
        """Test an unwritable audit log is retried in the background and reported."""
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        storage = JsonLinesAuditStorage(path=blocker / "audit.jsonl")
        event = AuditEventBuilder.group_deleted(group_id="grp-1", name="Fam")

        ticks, outcome = await _count_ticks_during(storage.append_event(event))

        assert outcome is False
        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_in_memory_audit_storage(self):
        """Test the in-memory audit backend keeps append order."""
        storage = InMemoryAuditStorage()
        event = AuditEventBuilder.group_deleted(group_id="grp-1", name="Fam")
        await storage.append_event(event)
        assert storage.events == [event]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
