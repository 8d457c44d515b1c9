"""MemoryStore: key-value entries, TTL expiry, search, recovery."""

import asyncio
import logging

import pytest

from ctxstore.base import load_document
from ctxstore.errors import StoreIOError
from ctxstore.memory import MEMORY_FILE, MemoryStore, key_pattern


@pytest.fixture
def memory(store, clock):
    return MemoryStore(store, clock=clock)


async def test_set_and_get(memory):
    entry = await memory.set("db", {"host": "localhost"}, tags=["infra"])
    got = await memory.get("db")
    assert got == entry
    assert got.value == {"host": "localhost"}
    assert got.tags == ["infra"]
    assert got.created_at == "2026-01-01T12:00:00.000Z"


async def test_on_disk_layout(memory, store):
    await memory.set("k", 1, ttl=5000)
    raw = await store.read(MEMORY_FILE)
    assert raw["version"] == 1
    assert raw["entries"]["k"] == {
        "key": "k", "value": 1, "tags": [],
        "createdAt": "2026-01-01T12:00:00.000Z",
        "updatedAt": "2026-01-01T12:00:00.000Z",
        "ttl": 5000,
    }


async def test_overwrite_keeps_created_at(memory, clock):
    await memory.set("k", 1)
    clock.advance(60_000)
    entry = await memory.set("k", 2)
    assert entry.created_at == "2026-01-01T12:00:00.000Z"
    assert entry.updated_at == "2026-01-01T12:01:00.000Z"
    assert (await memory.get("k")).value == 2


class TestExpiry:
    async def test_live_before_ttl_gone_after(self, memory, store, clock):
        await memory.set("session", "abc", ttl=1000)
        clock.advance(500)
        assert (await memory.get("session")).value == "abc"
        clock.advance(1000)
        assert await memory.get("session") is None
        # the expired entry was removed from disk, not just hidden
        assert "session" not in (await store.read(MEMORY_FILE))["entries"]

    async def test_expiry_is_strictly_after_deadline(self, memory, clock):
        await memory.set("k", 1, ttl=1000)
        clock.advance(1000)
        assert await memory.get("k") is not None
        clock.advance(1)
        assert await memory.get("k") is None

    async def test_ttl_is_measured_from_last_update(self, memory, clock):
        await memory.set("k", 1, ttl=1000)
        clock.advance(900)
        await memory.set("k", 2, ttl=1000)
        clock.advance(900)
        assert (await memory.get("k")).value == 2

    async def test_zero_ttl_never_expires(self, memory, clock):
        await memory.set("forever", 1, ttl=0)
        clock.advance(10 ** 12)
        assert await memory.get("forever") is not None

    async def test_negative_ttl_rejected(self, memory):
        with pytest.raises(ValueError, match="ttl"):
            await memory.set("k", 1, ttl=-1)

    async def test_list_hides_expired(self, memory, clock):
        await memory.set("short", 1, ttl=10)
        await memory.set("long", 2)
        clock.advance(20)
        assert [e.key for e in await memory.list()] == ["long"]

    async def test_sweep(self, memory, store, clock, caplog):
        await memory.set("a", 1, ttl=10)
        await memory.set("b", 2, ttl=10)
        await memory.set("c", 3)
        clock.advance(11)
        with caplog.at_level(logging.INFO, logger="ctxstore.memory"):
            assert await memory.sweep() == 2
        assert "swept 2" in caplog.text
        assert list((await store.read(MEMORY_FILE))["entries"]) == ["c"]
        assert await memory.sweep() == 0

    async def test_expired_entry_is_replaced_fresh(self, memory, clock):
        await memory.set("k", 1, ttl=10)
        clock.advance(100)
        entry = await memory.set("k", 2)
        assert entry.created_at == entry.updated_at


class TestSearchAndClear:
    async def test_wildcard_search_is_case_insensitive(self, memory):
        for key in ("project.name", "Project.lang", "user.name"):
            await memory.set(key, 1)
        assert sorted(e.key for e in await memory.search("project.*")) == ["Project.lang", "project.name"]
        assert [e.key for e in await memory.search("*.NAME")] == ["project.name", "user.name"]

    async def test_pattern_is_not_a_regex(self):
        assert key_pattern("a.b").match("a.b")
        assert not key_pattern("a.b").match("axb")

    async def test_search_by_any_tag(self, memory):
        await memory.set("a", 1, tags=["x"])
        await memory.set("b", 2, tags=["y"])
        await memory.set("c", 3, tags=["z"])
        assert sorted(e.key for e in await memory.search(tags=["x", "y"])) == ["a", "b"]

    async def test_delete(self, memory):
        await memory.set("k", 1)
        assert await memory.delete("k") is True
        assert await memory.delete("k") is False
        assert await memory.get("k") is None

    async def test_clear_by_tag_and_dry_run(self, memory):
        await memory.set("a", 1, tags=["tmp"])
        await memory.set("b", 2)
        assert await memory.clear(tags=["tmp"], dry_run=True) == ["a"]
        assert await memory.get("a") is not None
        assert await memory.clear(tags=["tmp"]) == ["a"]
        assert [e.key for e in await memory.list()] == ["b"]
        assert await memory.clear() == ["b"]
        assert await memory.list() == []


async def test_concurrent_sets_on_one_handle(memory):
    await asyncio.gather(*(memory.set(f"k{i}", i) for i in range(15)))
    assert sorted(e.value for e in await memory.list()) == list(range(15))


async def test_corrupt_document_resets_to_empty(memory, store, caplog):
    store.path_for(MEMORY_FILE).write_text("{{{")
    with caplog.at_level(logging.ERROR, logger="ctxstore.recovery"):
        assert await memory.list() == []
    assert "RECOVERY" in caplog.text
    assert MEMORY_FILE in caplog.text

    result_entry = await memory.set("fresh", 1)
    assert result_entry.key == "fresh"
    backups = await store.backups(MEMORY_FILE)
    assert backups[0].read_text() == "{{{"


async def test_io_errors_propagate(memory, store):
    store.path_for(MEMORY_FILE).mkdir()
    with pytest.raises(StoreIOError):
        await memory.list()


class TestMalformedFields:
    async def test_non_numeric_version(self, memory, store):
        await store.write(MEMORY_FILE, {"version": "v1", "entries": {"k": {"key": "k", "value": 1}}})
        assert [e.key for e in await memory.list()] == ["k"]
        await memory.set("k2", 2)
        assert (await store.read(MEMORY_FILE))["version"] == 1

    async def test_numeric_timestamps(self, memory, store):
        await store.write(MEMORY_FILE, {"version": 1, "entries": {"k": {
            "key": "k", "value": "v", "createdAt": 1700000000000, "updatedAt": 1700000000000, "ttl": 1000,
        }}})
        entry = await memory.get("k")
        assert entry.value == "v"
        assert entry.created_at == ""
        assert entry.expires_at() is None

    @pytest.mark.parametrize("ttl", [True, "500", 1e300])
    async def test_unusable_ttl_never_expires(self, memory, store, ttl):
        await store.write(MEMORY_FILE, {"version": 1, "entries": {"k": {
            "key": "k", "value": 1, "updatedAt": "2026-01-01T12:00:00.000Z", "ttl": ttl,
        }}})
        assert await memory.sweep() == 0
        assert (await memory.get("k")).value == 1

    async def test_unparseable_fields_take_the_recovery_path(self, store, caplog):
        def parse(raw):
            raise TypeError("bad field")

        await store.write(MEMORY_FILE, {"version": 1})
        with caplog.at_level(logging.ERROR, logger="ctxstore.recovery"):
            assert await load_document(store, MEMORY_FILE, parse, dict) == {}
        assert "RECOVERY" in caplog.text
        assert "malformed fields" in caplog.text
