"""Tests for the flat-file JSON backend."""

import asyncio
import json

import pytest

from kvspine.core.errors import InvalidArgumentError, StorageWriteError
from kvspine.storage import JsonFileBackend


class TestConstruction:
    def test_empty_path_rejected(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            JsonFileBackend("", ["main"])
        assert exc_info.value.argument == "path"

    def test_empty_extname_rejected(self, tmp_path):
        with pytest.raises(InvalidArgumentError) as exc_info:
            JsonFileBackend(tmp_path, ["main"], extname="")
        assert exc_info.value.argument == "extname"

    def test_extname_without_dot(self, tmp_path):
        backend = JsonFileBackend(tmp_path, ["main"], extname="db")
        assert backend.table_path("main") == tmp_path / "main" / "storage.db"

    def test_default_table(self, tmp_path):
        assert JsonFileBackend(tmp_path).tables == ("main", "timeout")


class TestLayout:
    @pytest.mark.asyncio
    async def test_connect_creates_empty_documents(self, file_backend):
        await file_backend.connect()
        for table in ("main", "users", "timeout"):
            path = file_backend.root / table / "storage.json"
            assert path.exists()
            assert json.loads(path.read_text()) == {}

    @pytest.mark.asyncio
    async def test_document_shape(self, file_backend):
        await file_backend.connect()
        await file_backend.set("main", "a", {"x": 1})
        await file_backend.set("main", "b", [1, 2])

        document = json.loads(file_backend.table_path("main").read_text())
        assert document == {
            "a": {"key": "a", "value": {"x": 1}},
            "b": {"key": "b", "value": [1, 2]},
        }

    @pytest.mark.asyncio
    async def test_existing_document_is_kept(self, tmp_path):
        path = tmp_path / "main" / "storage.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"a": {"key": "a", "value": 7}}))

        backend = JsonFileBackend(tmp_path, ["main"])
        await backend.connect()
        assert await backend.get("main", "a") == 7

    @pytest.mark.asyncio
    async def test_data_survives_reconnect(self, tmp_path):
        first = JsonFileBackend(tmp_path, ["main"])
        await first.connect()
        await first.set("main", "a", "persisted")
        await first.close()

        second = JsonFileBackend(tmp_path, ["main"])
        await second.connect()
        assert await second.get("main", "a") == "persisted"

    @pytest.mark.asyncio
    async def test_no_temp_files_left_behind(self, file_backend):
        await file_backend.connect()
        await file_backend.set("main", "a", 1)
        await file_backend.delete("main", "a")
        await file_backend.clear("main")
        assert [p.name for p in (file_backend.root / "main").iterdir()] == ["storage.json"]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_writers_keep_every_key(self, file_backend):
        await file_backend.connect()
        await asyncio.gather(*(file_backend.set("main", f"k{i}", i) for i in range(25)))

        data = await file_backend.all("main")
        assert data == {f"k{i}": i for i in range(25)}


class TestDegradedReads:
    @pytest.mark.asyncio
    async def test_corrupt_document_reads_as_empty(self, file_backend):
        await file_backend.connect()
        await file_backend.set("main", "a", 1)
        file_backend.table_path("main").write_text("{not json")

        assert await file_backend.all("main") == {}
        assert await file_backend.get("main", "a") is None
        assert await file_backend.has("main", "a") is False

    @pytest.mark.asyncio
    async def test_ping_survives_corrupt_document(self, file_backend):
        await file_backend.connect()
        file_backend.table_path("users").write_text("[1, 2")
        assert await file_backend.ping() >= 0

    @pytest.mark.asyncio
    async def test_write_over_corrupt_document_fails(self, file_backend):
        await file_backend.connect()
        file_backend.table_path("main").write_text("{not json")

        with pytest.raises(StorageWriteError) as exc_info:
            await file_backend.set("main", "a", 1)
        assert exc_info.value.context.table == "main"
        # The corrupt document is left for inspection rather than overwritten.
        assert file_backend.table_path("main").read_text() == "{not json"

    @pytest.mark.asyncio
    async def test_deleted_document_is_recreated_on_write(self, file_backend):
        await file_backend.connect()
        file_backend.table_path("main").unlink()

        await file_backend.set("main", "a", 1)
        assert await file_backend.get("main", "a") == 1


class TestImport:
    @pytest.mark.asyncio
    async def test_empty_path_rejected(self, file_backend):
        await file_backend.connect()
        with pytest.raises(InvalidArgumentError):
            await file_backend.convert_file_to_table("main", "")

    @pytest.mark.asyncio
    async def test_unreadable_file_imports_nothing(self, file_backend, tmp_path):
        await file_backend.connect()
        await file_backend.convert_file_to_table("main", str(tmp_path / "missing.json"))
        assert await file_backend.all("main") == {}

    @pytest.mark.asyncio
    async def test_raw_values_are_accepted(self, file_backend, tmp_path):
        source = tmp_path / "raw.json"
        source.write_text(json.dumps({"a": 1, "b": {"key": "b", "value": 2}}))
        await file_backend.connect()

        await file_backend.convert_file_to_table("main", str(source))
        assert await file_backend.all("main") == {"a": 1, "b": 2}
