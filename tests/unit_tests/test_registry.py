import asyncio
import os

import pytest

from share_api.adapters.index import DisplayNameIndex
from share_api.adapters.storage import INCOMING_DIRNAME
from share_api.errors import FileNotFound, InvalidKey, StorageWriteError
from share_api.registry import FileRegistry
from share_api.schemas import FileRecord
from tests.consts import TEST_PDF_CONTENT, TEST_PDF_NAME


async def test_register_then_list(registry):
    record = await registry.register(TEST_PDF_NAME, TEST_PDF_CONTENT)

    assert record.display_name == TEST_PDF_NAME
    assert record.size_bytes == 37888
    assert record.size == "37.00 KB"
    assert record.path == f"/uploads/{record.storage_key}"
    assert record.storage_key.endswith(".pdf")

    listed = await registry.list()
    assert [r.storage_key for r in listed] == [record.storage_key]
    assert listed[0].display_name == TEST_PDF_NAME


async def test_list_is_newest_first(registry, storage):
    older = await registry.register("older.txt", b"1")
    newer = await registry.register("newer.txt", b"2")
    os.utime(storage.root / older.storage_key, (1_700_000_000, 1_700_000_000))
    os.utime(storage.root / newer.storage_key, (1_700_000_100, 1_700_000_100))

    listed = await registry.list()

    assert [r.display_name for r in listed] == ["newer.txt", "older.txt"]


async def test_concurrent_uploads_with_same_name_get_distinct_keys(registry):
    records = await asyncio.gather(*(registry.register("photo.jpg", b"jpeg") for _ in range(25)))

    keys = {record.storage_key for record in records}
    assert len(keys) == 25
    listed = await registry.list()
    assert {r.storage_key for r in listed} == keys
    assert all(r.display_name == "photo.jpg" for r in listed)


async def test_display_name_with_delimiter_survives(registry):
    record = await registry.register("2024-01-report-final.pdf", b"x")

    listed = await registry.list()

    assert listed[0].storage_key == record.storage_key
    assert listed[0].display_name == "2024-01-report-final.pdf"


async def test_display_names_survive_restart(registry, storage, upload_dir):
    record = await registry.register("notes.md", b"# notes")

    index = DisplayNameIndex(upload_dir / ".index.json")
    index.load()
    restarted = FileRegistry(storage, index)

    listed = await restarted.list()
    assert listed[0].display_name == "notes.md"
    assert listed[0].storage_key == record.storage_key


async def test_unknown_file_falls_back_to_storage_key(registry, storage):
    (storage.root / "1700000000000-000000001.bin").write_bytes(b"dropped in by hand")

    listed = await registry.list()

    assert listed[0].display_name == "1700000000000-000000001.bin"
    assert listed[0].size_bytes == 18


async def test_delete_twice_reports_not_found(registry):
    record = await registry.register("a.txt", b"abc")

    removed = await registry.delete(record.storage_key)
    assert removed.storage_key == record.storage_key
    assert removed.display_name == "a.txt"

    with pytest.raises(FileNotFound):
        await registry.delete(record.storage_key)
    assert await registry.list() == []
    assert registry.index.get(record.storage_key) is None


async def test_racing_deletes_of_same_key(registry):
    record = await registry.register("a.txt", b"abc")

    results = await asyncio.gather(
        *(registry.delete(record.storage_key) for _ in range(5)),
        return_exceptions=True,
    )

    assert sum(isinstance(result, FileRecord) for result in results) == 1
    assert sum(isinstance(result, FileNotFound) for result in results) == 4


async def test_delete_of_never_issued_key(registry):
    with pytest.raises(FileNotFound):
        await registry.delete("1700000000000-000000001.txt")


async def test_delete_rejects_unsafe_key(registry):
    with pytest.raises(InvalidKey):
        await registry.delete("../outside.txt")


async def test_failed_upload_registers_nothing(registry, storage, monkeypatch):
    def fail_save(display_name, content):
        raise StorageWriteError("upload", "No space left on device")

    monkeypatch.setattr(storage, "save", fail_save)

    with pytest.raises(StorageWriteError):
        await registry.register("a.txt", b"abc")
    assert await registry.list() == []
    assert len(registry.index) == 0


async def test_open_returns_record_and_stream(registry):
    record = await registry.register("a.txt", b"abc")

    opened, stream = await registry.open(record.storage_key)
    with stream:
        assert stream.read() == b"abc"
    assert opened.display_name == "a.txt"


def test_reconcile_prunes_index_and_staging(registry, storage):
    registry.index.put("1700000000000-000000009.txt", "gone.txt")
    (storage.root / INCOMING_DIRNAME / "interrupted.part").write_bytes(b"partial")

    summary = registry.reconcile()

    assert summary == {"files": 0, "pruned_names": 1, "purged_staging": 1}
    assert registry.index.get("1700000000000-000000009.txt") is None
