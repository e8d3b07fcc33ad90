"""Persistent mapping from storage keys to the display names users uploaded them with."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

logger = logging.getLogger(__name__)


class DisplayNameIndex:
    """
    JSON side-index kept next to the stored files.

    The filesystem stays the source of truth for which files exist; this
    index only remembers the original names so they survive restarts.
    Writes go to a temporary file that replaces the index atomically.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._names: Dict[str, str] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (OSError, ValueError) as e:
            logger.warning("Display name index %s is unreadable, starting empty: %s", self.path, e)
            data = {}

        if not isinstance(data, dict):
            logger.warning("Display name index %s has unexpected shape, starting empty", self.path)
            data = {}

        with self._lock:
            self._names = {str(k): str(v) for k, v in data.items()}
        logger.info("Loaded %d display name(s) from %s", len(self._names), self.path)

    def get(self, storage_key: str) -> Optional[str]:
        with self._lock:
            return self._names.get(storage_key)

    def put(self, storage_key: str, display_name: str) -> None:
        with self._lock:
            self._names[storage_key] = display_name
            self._flush()

    def discard(self, storage_key: str) -> None:
        with self._lock:
            if self._names.pop(storage_key, None) is not None:
                self._flush()

    def retain(self, storage_keys: Iterable[str]) -> int:
        """Drop entries whose file is gone. Returns the number of entries dropped."""
        keep = set(storage_keys)
        with self._lock:
            stale = [k for k in self._names if k not in keep]
            for k in stale:
                del self._names[k]
            if stale:
                self._flush()
        if stale:
            logger.info("Pruned %d stale display name(s)", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def _flush(self) -> None:
        # Caller holds the lock. A failed write only costs display-name fidelity.
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._names, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.warning("Could not persist display name index %s: %s", self.path, e)
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
