"""store.py
Key-value stores backing the trajectory cache. Keys are URL / file-name safe.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class Store(Protocol):
    def exists(self, key: str) -> bool:
        ...

    def read(self, key: str) -> bytes:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...


def _check_key(key: str) -> str:
    if not key or "/" in key or "\\" in key or key in (".", ".."):
        raise ValueError(f"Invalid store key {key!r}")
    return key


class DirectoryStore:
    """One file per key under `root`. The directory is created on first write.

    Writes land in a temporary file that is then renamed over the target, so a
    reader sees either the old entry, the new one, or none.
    """

    def __init__(self, root: str | os.PathLike = ".build/trajectories"):
        self.root = Path(root)

    def path(self, key: str) -> Path:
        return self.root / _check_key(key)

    def exists(self, key: str) -> bool:
        return self.path(key).is_file()

    def read(self, key: str) -> bytes:
        return self.path(key).read_bytes()

    def write(self, key: str, data: bytes) -> None:
        target = self.path(key)
        self.root.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, target)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        logger.debug(f"Wrote {len(data)} bytes to {target}")

    def __repr__(self):
        return f"DirectoryStore({str(self.root)!r})"


class MemoryStore:
    """Dict-backed store for tests and throwaway runs."""

    def __init__(self):
        self.entries: dict[str, bytes] = {}

    def exists(self, key: str) -> bool:
        return _check_key(key) in self.entries

    def read(self, key: str) -> bytes:
        return self.entries[_check_key(key)]

    def write(self, key: str, data: bytes) -> None:
        self.entries[_check_key(key)] = bytes(data)

    def __repr__(self):
        return f"MemoryStore(entries={len(self.entries)})"
