"""
File registry: the authoritative view of which files are shared.

The registry does not keep its own copy of the file list. Each listing is
reconciled from the storage adapter, with display names looked up in the
side-index. It is the only component that calls the mutating storage
operations.
"""

import logging
from typing import BinaryIO, List, Tuple, Union

from starlette.concurrency import run_in_threadpool

from share_api.adapters.index import DisplayNameIndex
from share_api.adapters.storage import LocalStorage, StoredEntry
from share_api.errors import FileNotFound, StorageWriteError
from share_api.schemas import FileRecord

logger = logging.getLogger(__name__)


class FileRegistry:
    """Builds `FileRecord`s from storage contents and routes every upload and delete to storage."""

    def __init__(self, storage: LocalStorage, index: DisplayNameIndex):
        self.storage = storage
        self.index = index

    def _to_record(self, entry: StoredEntry) -> FileRecord:
        display_name = self.index.get(entry.storage_key) or entry.storage_key
        return FileRecord(
            storage_key=entry.storage_key,
            display_name=display_name,
            size_bytes=entry.size_bytes,
            created_at=entry.modified_at,
        )

    def _register(self, display_name: str, content: Union[bytes, BinaryIO]) -> FileRecord:
        storage_key = self.storage.save(display_name, content)
        try:
            entry = self.storage.stat(storage_key)
        except FileNotFound as e:
            raise StorageWriteError("upload", f"{storage_key} vanished after write") from e
        self.index.put(storage_key, display_name)
        return self._to_record(entry)

    async def register(self, display_name: str, content: Union[bytes, BinaryIO]) -> FileRecord:
        """
        Store an upload and return its record.

        Raises:
            StorageWriteError: the file could not be written; nothing is registered.
        """
        return await run_in_threadpool(self._register, display_name, content)

    def _list(self) -> List[FileRecord]:
        records = [self._to_record(entry) for entry in self.storage.list()]
        records.sort(key=lambda record: (record.created_at, record.storage_key), reverse=True)
        return records

    async def list(self) -> List[FileRecord]:
        """All stored files, newest first. Never raises on enumeration failure."""
        return await run_in_threadpool(self._list)

    def _get(self, storage_key: str) -> FileRecord:
        return self._to_record(self.storage.stat(storage_key))

    async def get(self, storage_key: str) -> FileRecord:
        return await run_in_threadpool(self._get, storage_key)

    def _delete(self, storage_key: str) -> FileRecord:
        record = self._get(storage_key)
        # a concurrent delete of the same key loses here with FileNotFound
        self.storage.remove(storage_key)
        self.index.discard(storage_key)
        return record

    async def delete(self, storage_key: str) -> FileRecord:
        """
        Remove a stored file and return the record it had.

        Raises:
            InvalidKey: the key is malformed.
            FileNotFound: the file is already gone.
            StorageWriteError: the file could not be removed.
        """
        return await run_in_threadpool(self._delete, storage_key)

    def _open(self, storage_key: str) -> Tuple[FileRecord, BinaryIO]:
        stream = self.storage.open(storage_key)
        try:
            return self._get(storage_key), stream
        except Exception:
            stream.close()
            raise

    async def open(self, storage_key: str) -> Tuple[FileRecord, BinaryIO]:
        """Open a stored file for download. The caller closes the stream."""
        return await run_in_threadpool(self._open, storage_key)

    def reconcile(self) -> dict:
        """
        Bring the side-index and staging area in line with the stored files.

        Drops display names whose file is gone and removes leftovers from
        interrupted uploads. Runs at startup and from the CLI.
        """
        self.storage.ensure_root()
        purged = self.storage.purge_incoming()
        entries = self.storage.list()
        pruned = self.index.retain(entry.storage_key for entry in entries)
        logger.info(
            "Reconciled %d file(s), pruned %d stale name(s), purged %d staging file(s)",
            len(entries), pruned, purged,
        )
        return {"files": len(entries), "pruned_names": pruned, "purged_staging": purged}
