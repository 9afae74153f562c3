"""
Contract tests run against every storage backend.

The ``backend`` fixture (conftest) yields an unconnected file, SQLite,
mongomock-backed and fake-Firestore backend in turn.
"""

import asyncio

import pytest

from kvspine.core.errors import NotReadyError, UnknownTableError
from kvspine.core.events import EventType
from kvspine.storage import StorageBackend


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, backend):
        assert isinstance(backend, StorageBackend)

    @pytest.mark.asyncio
    async def test_connect_publishes_ready(self, backend, recorder):
        await backend.events.subscribe(EventType.READY, recorder)
        await backend.connect()

        ready = recorder.of("ready")
        assert len(ready) == 1
        assert ready[0].payload == {"backend": backend.name, "tables": ["main", "users", "timeout"]}
        assert backend.is_ready

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, backend, recorder):
        await backend.events.subscribe(EventType.READY, recorder)
        await backend.connect()
        await backend.connect()
        assert len(recorder.of("ready")) == 1

    @pytest.mark.asyncio
    async def test_concurrent_connect_waits_for_ready_handlers(self, backend):
        delivered = []

        async def slow_ready(event):
            await asyncio.sleep(0.05)
            delivered.append(event.event_type)

        async def second_caller():
            await backend.connect()
            return list(delivered)

        await backend.events.subscribe(EventType.READY, slow_ready)
        _, seen_by_second = await asyncio.gather(backend.connect(), second_caller())

        assert seen_by_second == ["ready"]
        assert delivered == ["ready"]

    @pytest.mark.asyncio
    async def test_operations_before_connect_fail(self, backend):
        with pytest.raises(NotReadyError):
            await backend.get("main", "a")
        with pytest.raises(NotReadyError):
            await backend.set("main", "a", 1)

    @pytest.mark.asyncio
    async def test_close_then_use_fails(self, backend):
        await backend.connect()
        await backend.close()
        await backend.close()
        with pytest.raises(NotReadyError):
            await backend.all("main")

    @pytest.mark.asyncio
    async def test_async_context_manager(self, backend):
        async with backend as connected:
            assert connected.is_ready
        assert not backend.is_ready

    @pytest.mark.asyncio
    async def test_timeout_table_is_declared(self, backend):
        assert backend.tables == ("main", "users", "timeout")
        assert backend.has_table("timeout")
        assert not backend.has_table("ghosts")


class TestTableGuard:
    @pytest.mark.asyncio
    async def test_unknown_table(self, backend):
        await backend.connect()
        with pytest.raises(UnknownTableError) as exc_info:
            await backend.set("ghosts", "a", 1)
        assert exc_info.value.table == "ghosts"

    @pytest.mark.asyncio
    async def test_unknown_table_on_reads(self, backend):
        await backend.connect()
        for call in (backend.get("ghosts", "a"), backend.has("ghosts", "a"), backend.all("ghosts")):
            with pytest.raises(UnknownTableError):
                await call


class TestReadWrite:
    @pytest.mark.asyncio
    async def test_set_then_get(self, backend):
        await backend.connect()
        result = await backend.set("main", "a", {"nested": [1, 2, {"deep": True}]})

        assert result is backend
        assert await backend.get("main", "a") == {"nested": [1, 2, {"deep": True}]}
        assert await backend.has("main", "a")

    @pytest.mark.asyncio
    async def test_missing_key(self, backend):
        await backend.connect()
        assert await backend.get("main", "missing") is None
        assert await backend.has("main", "missing") is False

    @pytest.mark.asyncio
    async def test_falsy_values_are_present(self, backend):
        await backend.connect()
        for key, value in (("zero", 0), ("empty", ""), ("none", None), ("false", False)):
            await backend.set("main", key, value)
            assert await backend.has("main", key), key
            assert await backend.get("main", key) == value

    @pytest.mark.asyncio
    async def test_all(self, backend):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.set("main", "b", "two")
        assert await backend.all("main") == {"a": 1, "b": "two"}

    @pytest.mark.asyncio
    async def test_table_isolation(self, backend):
        await backend.connect()
        await backend.set("main", "shared", "from-main")
        await backend.set("users", "shared", "from-users")

        assert await backend.get("main", "shared") == "from-main"
        assert await backend.get("users", "shared") == "from-users"
        await backend.delete("main", "shared")
        assert await backend.all("main") == {}
        assert await backend.all("users") == {"shared": "from-users"}

    @pytest.mark.asyncio
    async def test_last_writer_wins(self, backend):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.set("main", "a", 2)
        assert await backend.get("main", "a") == 2

    @pytest.mark.asyncio
    async def test_ping(self, backend):
        await backend.connect()
        await backend.set("main", "a", 1)
        elapsed = await backend.ping()
        assert isinstance(elapsed, float)
        assert elapsed >= 0


class TestChangeEvents:
    @pytest.mark.asyncio
    async def test_create_event(self, backend, recorder):
        await backend.connect()
        await backend.events.subscribe("*", recorder)

        await backend.set("main", "a", 1)

        assert [e.event_type for e in recorder.events] == ["create"]
        assert recorder.events[0].payload == {"table": "main", "key": "a", "data": 1}
        assert recorder.events[0].source == backend.name

    @pytest.mark.asyncio
    async def test_update_event(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.events.subscribe("*", recorder)

        await backend.set("main", "a", 2)

        assert [e.event_type for e in recorder.events] == ["update"]
        assert recorder.events[0].payload == {"table": "main", "key": "a", "newData": 2, "oldData": 1}

    @pytest.mark.asyncio
    async def test_equal_write_is_silent(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", {"x": [1, 2]})
        await backend.events.subscribe("*", recorder)

        await backend.set("main", "a", {"x": [1, 2]})
        await backend.set("main", "a", {"x": (1, 2)})

        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_rewriting_falsy_value_is_not_a_create(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", 0)
        await backend.events.subscribe("*", recorder)

        await backend.set("main", "a", 0)
        await backend.set("main", "a", None)

        assert [e.event_type for e in recorder.events] == ["update"]

    @pytest.mark.asyncio
    async def test_delete_event(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", {"v": 1})
        await backend.events.subscribe("*", recorder)

        await backend.delete("main", "a")

        assert not await backend.has("main", "a")
        assert [e.event_type for e in recorder.events] == ["delete"]
        assert recorder.events[0].payload == {"table": "main", "key": "a", "data": {"v": 1}}

    @pytest.mark.asyncio
    async def test_bulk_delete_is_one_event(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.set("main", "b", 2)
        await backend.set("main", "c", 3)
        await backend.events.subscribe("*", recorder)

        await backend.delete("main", ["a", "c"])

        assert await backend.all("main") == {"b": 2}
        assert len(recorder.events) == 1
        assert recorder.events[0].payload == {"table": "main", "key": ["a", "c"], "data": [1, 3]}

    @pytest.mark.asyncio
    async def test_clear_event_carries_snapshot(self, backend, recorder):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.set("main", "b", 2)
        await backend.events.subscribe("*", recorder)

        await backend.clear("main")

        assert [e.event_type for e in recorder.events] == ["deleteAll"]
        assert recorder.events[0].payload == {"table": "main", "variables": {"a": 1, "b": 2}}
        assert await backend.all("main") == {}

    @pytest.mark.asyncio
    async def test_events_follow_the_write(self, backend):
        await backend.connect()
        seen = []

        async def check(event):
            seen.append(await backend.get("main", "a"))

        await backend.events.subscribe("create", check)
        await backend.set("main", "a", 42)
        assert seen == [42]


class TestScans:
    @pytest.fixture
    def populate(self, backend):
        async def _populate():
            await backend.connect()
            for key, value in {"a": 1, "b": 5, "c": 10, "d": "text"}.items():
                await backend.set("main", key, value)

        return _populate

    @pytest.mark.asyncio
    async def test_find_one(self, backend, populate):
        await populate()
        entry = await backend.find_one("main", lambda e, i: e.value == 5)
        assert entry.key == "b"
        assert entry.value == 5
        assert isinstance(entry.index, int)

    @pytest.mark.asyncio
    async def test_find_one_no_match(self, backend, populate):
        await populate()
        assert await backend.find_one("main", lambda e, i: e.value == "nope") is None

    @pytest.mark.asyncio
    async def test_find_many(self, backend, populate):
        await populate()
        entries = await backend.find_many(
            "main", lambda e, i: isinstance(e.value, int) and e.value >= 5
        )
        assert sorted(e.key for e in entries) == ["b", "c"]

    @pytest.mark.asyncio
    async def test_async_predicate(self, backend, populate):
        await populate()

        async def is_text(entry, index):
            await asyncio.sleep(0)
            return isinstance(entry.value, str)

        entries = await backend.find_many("main", is_text)
        assert [e.key for e in entries] == ["d"]

    @pytest.mark.asyncio
    async def test_index_matches_snapshot_position(self, backend, populate):
        await populate()
        entries = await backend.find_many("main", lambda e, i: True)
        assert [e.index for e in entries] == list(range(4))

    @pytest.mark.asyncio
    async def test_delete_many_emits_per_key(self, backend, populate, recorder):
        await populate()
        await backend.events.subscribe("delete", recorder)

        removed = await backend.delete_many("main", lambda e, i: isinstance(e.value, int) and e.value < 10)

        assert sorted(removed) == ["a", "b"]
        assert sorted(await backend.all("main")) == ["c", "d"]
        assert sorted(e.payload["key"] for e in recorder.events) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_find_many_ignores_writes_made_while_scanning(self, backend, populate):
        await populate()

        async def writes_while_scanning(entry, index):
            if index == 0:
                await backend.set("main", "z", 5)
            return isinstance(entry.value, int)

        entries = await backend.find_many("main", writes_while_scanning)

        assert sorted(e.key for e in entries) == ["a", "b", "c"]
        assert await backend.get("main", "z") == 5

    @pytest.mark.asyncio
    async def test_delete_many_ignores_writes_made_while_scanning(self, backend, populate, recorder):
        await populate()
        await backend.events.subscribe("delete", recorder)

        async def writes_while_scanning(entry, index):
            if index == 0:
                await backend.set("main", "z", 5)
            return isinstance(entry.value, int)

        removed = await backend.delete_many("main", writes_while_scanning)

        assert sorted(removed) == ["a", "b", "c"]
        assert await backend.all("main") == {"d": "text", "z": 5}
        assert "z" not in [e.payload["key"] for e in recorder.events]


class TestImportExport:
    @pytest.mark.asyncio
    async def test_round_trip_through_file(self, backend, tmp_path, recorder):
        await backend.connect()
        await backend.set("main", "a", 1)
        await backend.set("main", "b", {"x": True})
        export_path = tmp_path / "export" / "main.json"

        await backend.convert_table_to_file("main", str(export_path))
        await backend.events.subscribe("create", recorder)
        await backend.convert_file_to_table("users", str(export_path))

        assert await backend.all("users") == {"a": 1, "b": {"x": True}}
        assert len(recorder.of("create")) == 2
