"""cache.py
Content-addressed trajectory cache. The key is a digest of the exact atom
content (element + float32 position bits) plus a version tag, so identical
input reuses the stored trajectory and a changed procedure does not.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from typing import Callable, Sequence

import numpy as np

from storage import serialization
from storage.store import Store
from system.atoms import Atom, Frame, Trajectory

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "trajectory-cache-1"


def derive_key(atoms: Sequence[Atom], version: str = DEFAULT_VERSION) -> str:
    """
    Hash the ordered atom content into a file-name safe key.

    Parameters
    ----------
    atoms : sequence of Atom
        Geometry to key. Order matters.
    version : str
        Tag mixed into the digest; change it to invalidate older entries.

    Returns
    -------
    str
        SHA-256 digest in the base64url alphabet ("+" -> "-", "/" -> "_"), 44 characters.
    """
    frame = Frame.from_atoms(atoms)
    records = np.zeros(len(frame), dtype=[("z", "u1"), ("pos", "<f4", (3,))])
    records["z"] = frame.atomic_numbers.numpy()
    records["pos"] = frame.positions.numpy()

    digest = hashlib.sha256()
    digest.update(version.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(len(frame).to_bytes(4, "little"))
    digest.update(records.tobytes())
    return base64.urlsafe_b64encode(digest.digest()).decode("ascii")


class TrajectoryCache:
    """
    Lookup-or-compute over a key-value store.

    Not safe for concurrent writers of the same key across processes; two such
    writers both compute and the later write wins, which is harmless since the
    computation is deterministic.

    Parameters
    ----------
    store : Store
        exists / read / write backend.
    version : str
        Default version tag for keys.
    """

    def __init__(self, store: Store, version: str = DEFAULT_VERSION):
        self.store = store
        self.version = version
        self.hits = 0
        self.misses = 0

    def key(self, atoms: Sequence[Atom], version: str | None = None) -> str:
        return derive_key(atoms, self.version if version is None else f"{self.version};{version}")

    def load(self, key: str) -> Trajectory | None:
        """Stored trajectory for `key`, or None when absent or unreadable."""
        try:
            if not self.store.exists(key):
                return None
            return serialization.decode(self.store.read(key))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry {key}: {e}")
            return None

    def load_or_compute(self, atoms: Sequence[Atom], compute: Callable[[], Trajectory], *, version: str | None = None) -> Trajectory:
        """
        Return the stored trajectory for `atoms`, computing and storing it on a miss.

        Both branches return the decoded stored bytes, so a fresh computation
        and a later hit are indistinguishable.
        """
        key = self.key(atoms, version)
        trajectory = self.load(key)
        if trajectory is not None:
            self.hits += 1
            logger.info(f"Trajectory cache hit: {key}")
            return trajectory

        self.misses += 1
        logger.info(f"Trajectory cache miss: {key}")
        data = serialization.encode(compute())
        self.store.write(key, data)
        return serialization.decode(data)

    def __repr__(self):
        return f"TrajectoryCache(store={self.store}, hits={self.hits}, misses={self.misses})"
