"""
Local filesystem storage for uploaded files.

Every stored file lives directly in the upload directory under its storage
key. Uploads are streamed into a hidden staging directory first and only
linked into place once fully written, so a listing never sees a partial file.
"""

import logging
import os
import re
import secrets
import shutil
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, List, Union

from share_api.errors import EnumerationError, FileNotFound, InvalidKey, StorageWriteError

logger = logging.getLogger(__name__)

INCOMING_DIRNAME = ".incoming"
MAX_KEY_LENGTH = 255
MAX_KEY_ATTEMPTS = 16
COPY_CHUNK_SIZE = 1024 * 1024

_FORBIDDEN_KEY_CHARS = ("/", "\\", "\x00")
_EXTENSION_PATTERN = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


@dataclass(frozen=True)
class StoredEntry:
    """What the filesystem reports about one stored file."""
    storage_key: str
    size_bytes: int
    modified_at: datetime


def sanitize_extension(display_name: str) -> str:
    """Return the lower-cased extension of `display_name`, or "" if it is not plain alphanumerics."""
    # Browsers on Windows may send the full client path
    basename = display_name.replace("\\", "/").rsplit("/", 1)[-1]
    suffix = Path(basename).suffix
    if _EXTENSION_PATTERN.match(suffix):
        return suffix.lower()
    return ""


def generate_storage_key(display_name: str) -> str:
    """Build a fresh key: epoch millis, nine random digits, sanitized extension."""
    millis = int(time.time() * 1000)
    random_part = secrets.randbelow(10**9)
    return f"{millis}-{random_part:09d}{sanitize_extension(display_name)}"


def validate_storage_key(storage_key: str) -> str:
    """
    Reject keys that could address anything outside the upload directory.

    Hidden names are refused too, so the staging area and side-index are unreachable.
    """
    if (
        not storage_key
        or len(storage_key) > MAX_KEY_LENGTH
        or storage_key.startswith(".")
        or ".." in storage_key
        or any(char in storage_key for char in _FORBIDDEN_KEY_CHARS)
    ):
        raise InvalidKey(storage_key)
    return storage_key


def is_valid_storage_key(storage_key: str) -> bool:
    try:
        validate_storage_key(storage_key)
    except InvalidKey:
        return False
    return True


class LocalStorage:
    """Filesystem-backed store keyed by server generated storage keys."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.incoming = self.root / INCOMING_DIRNAME

    def ensure_root(self) -> None:
        """Create the upload and staging directories if they do not exist yet."""
        self.incoming.mkdir(parents=True, exist_ok=True)
        logger.info("Storage initialized at %s", self.root)

    def _path_for(self, storage_key: str) -> Path:
        return self.root / validate_storage_key(storage_key)

    def save(self, display_name: str, content: Union[bytes, BinaryIO]) -> str:
        """
        Write `content` to a new, unique storage key and return the key.

        Args:
            display_name: Original file name; only its extension is used.
            content: Raw bytes or a readable binary stream.

        Returns:
            The storage key of the stored file.

        Raises:
            StorageWriteError: if the file could not be fully written.
        """
        staging_path = self.incoming / f"{secrets.token_hex(16)}.part"
        try:
            self.incoming.mkdir(parents=True, exist_ok=True)
            with open(staging_path, "xb") as staging:
                if isinstance(content, (bytes, bytearray, memoryview)):
                    staging.write(content)
                else:
                    shutil.copyfileobj(content, staging, COPY_CHUNK_SIZE)
                staging.flush()
                os.fsync(staging.fileno())
        except OSError as e:
            logger.error("Failed to stage upload %r: %s", display_name, e)
            self._discard(staging_path)
            raise StorageWriteError("upload", str(e)) from e

        try:
            for _ in range(MAX_KEY_ATTEMPTS):
                storage_key = generate_storage_key(display_name)
                try:
                    # link() refuses to overwrite, so a colliding key is retried
                    os.link(staging_path, self.root / storage_key)
                except FileExistsError:
                    logger.warning("Storage key collision on %s, regenerating", storage_key)
                    continue
                logger.info("Saved %r as %s", display_name, storage_key)
                return storage_key
            raise StorageWriteError("upload", "could not allocate a unique storage key")
        except OSError as e:
            logger.error("Failed to finalize upload %r: %s", display_name, e)
            raise StorageWriteError("upload", str(e)) from e
        finally:
            self._discard(staging_path)

    def stat(self, storage_key: str) -> StoredEntry:
        path = self._path_for(storage_key)
        try:
            st = path.stat()
        except FileNotFoundError as e:
            raise FileNotFound(storage_key) from e
        return StoredEntry(
            storage_key=storage_key,
            size_bytes=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def scan(self) -> List[StoredEntry]:
        """
        Enumerate stored files, skipping hidden entries and anything that is not a regular file.

        Raises:
            EnumerationError: if the upload directory cannot be read.
        """
        try:
            dir_entries = list(os.scandir(self.root))
        except OSError as e:
            raise EnumerationError(f"cannot read {self.root}: {e}") from e

        entries = []
        for dir_entry in dir_entries:
            if not is_valid_storage_key(dir_entry.name):
                # hidden, or a name no request could address
                continue
            try:
                if not dir_entry.is_file(follow_symlinks=False):
                    continue
                st = dir_entry.stat(follow_symlinks=False)
            except OSError:
                # removed between scandir() and stat()
                continue
            entries.append(
                StoredEntry(
                    storage_key=dir_entry.name,
                    size_bytes=st.st_size,
                    modified_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                )
            )
        return entries

    def list(self) -> List[StoredEntry]:
        """Enumerate stored files; an unreadable or missing directory counts as empty."""
        try:
            return self.scan()
        except EnumerationError as e:
            logger.warning("Listing failed, reporting no files: %s", e)
            return []

    def remove(self, storage_key: str) -> None:
        """
        Delete a stored file.

        Raises:
            InvalidKey: the key is malformed.
            FileNotFound: nothing is stored under the key (e.g. a concurrent delete won).
            StorageWriteError: the file exists but could not be removed.
        """
        path = self._path_for(storage_key)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise FileNotFound(storage_key) from e
        except OSError as e:
            logger.error("Failed to remove %s: %s", storage_key, e)
            raise StorageWriteError("delete", str(e)) from e
        logger.info("Removed %s", storage_key)

    def open(self, storage_key: str) -> BinaryIO:
        """
        Open a stored file for reading. The caller closes the returned stream.

        Raises:
            InvalidKey: the key is malformed; the filesystem is not touched.
            FileNotFound: nothing is stored under the key.
        """
        path = self._path_for(storage_key)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError) as e:
            raise FileNotFound(storage_key) from e

    def purge_incoming(self) -> int:
        """Remove staging files left behind by interrupted uploads. Returns how many were removed."""
        removed = 0
        try:
            leftovers = list(self.incoming.iterdir())
        except FileNotFoundError:
            return 0
        for leftover in leftovers:
            if self._discard(leftover):
                removed += 1
        if removed:
            logger.info("Purged %d leftover staging file(s)", removed)
        return removed

    @staticmethod
    def _discard(path: Path) -> bool:
        try:
            os.unlink(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not remove staging file %s: %s", path, e)
            return False
