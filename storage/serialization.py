"""serialization.py
Binary layout of a trajectory, little-endian throughout:

    magic         8 bytes   b"TRAJv001"
    frame count   uint32
    atom count    uint32
    elements      uint8   x atoms
    positions     float32 x frames x atoms x 3

Elements are stored once since every frame shares the same ordering.
decode(encode(t)) == t bit for bit.
"""

from __future__ import annotations

import numpy as np
import torch

from system.atoms import Frame, Trajectory
from system.errors import SerializationError

MAGIC = b"TRAJv001"
_HEADER = np.dtype([("frames", "<u4"), ("atoms", "<u4")])


def encode(trajectory: Trajectory) -> bytes:
    z = trajectory.atomic_numbers.numpy()
    if z.size and (z.min() < 0 or z.max() > 255):
        raise ValueError("Atomic numbers must fit in one byte to be serialized.")
    header = np.array([(len(trajectory), z.size)], dtype=_HEADER)
    positions = trajectory.positions().numpy().astype("<f4", copy=False)
    return b"".join([MAGIC, header.tobytes(), z.astype(np.uint8).tobytes(), positions.tobytes()])


def decode(data: bytes) -> Trajectory:
    if len(data) < len(MAGIC) + _HEADER.itemsize or data[:len(MAGIC)] != MAGIC:
        raise SerializationError("Not a serialized trajectory (bad magic or truncated header).")
    offset = len(MAGIC)
    header = np.frombuffer(data, dtype=_HEADER, count=1, offset=offset)[0]
    n_frames, n_atoms = int(header["frames"]), int(header["atoms"])
    offset += _HEADER.itemsize

    expected = offset + n_atoms + 12 * n_frames * n_atoms
    if len(data) != expected:
        raise SerializationError(f"Expected {expected} bytes for {n_frames} frames of {n_atoms} atoms, got {len(data)}.")
    if n_frames == 0:
        raise SerializationError("Serialized trajectory has no frames.")

    z = torch.from_numpy(np.frombuffer(data, dtype=np.uint8, count=n_atoms, offset=offset).astype(np.int64))
    offset += n_atoms
    positions = np.frombuffer(data, dtype="<f4", count=n_frames * n_atoms * 3, offset=offset)
    positions = torch.from_numpy(positions.astype(np.float32).reshape(n_frames, n_atoms, 3))
    return Trajectory([Frame(z, p) for p in positions])
