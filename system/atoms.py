"""atoms.py
Value types shared by the minimizer, the integrators and the cache.

* `Atom`       : one element + position, float32 exact
* `Frame`      : one snapshot of every atom, (N,) atomic numbers and (N, 3) positions
* `Trajectory` : non-empty ordered sequence of frames with a fixed atom ordering
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence
import math

import torch

from system.units import YG_PER_AMU

# --- periodic table --------------------------------------------------------
# atomic number -> (symbol, standard atomic weight in amu)
PERIODIC_TABLE = {
    1: ("H", 1.008),    2: ("He", 4.0026),  3: ("Li", 6.94),    4: ("Be", 9.0122),
    5: ("B", 10.81),    6: ("C", 12.011),   7: ("N", 14.007),   8: ("O", 15.999),
    9: ("F", 18.998),  10: ("Ne", 20.180), 11: ("Na", 22.990), 12: ("Mg", 24.305),
   13: ("Al", 26.982), 14: ("Si", 28.085), 15: ("P", 30.974),  16: ("S", 32.06),
   17: ("Cl", 35.45),  18: ("Ar", 39.948), 19: ("K", 39.098),  20: ("Ca", 40.078),
   31: ("Ga", 69.723), 32: ("Ge", 72.630), 33: ("As", 74.922), 34: ("Se", 78.971),
   35: ("Br", 79.904), 49: ("In", 114.82), 50: ("Sn", 118.71), 51: ("Sb", 121.76),
   52: ("Te", 127.60), 53: ("I", 126.90),  82: ("Pb", 207.2),
}


def element_symbol(atomic_number: int) -> str:
    return PERIODIC_TABLE.get(atomic_number, ("X", 0.0))[0]


def element_mass(atomic_number: int) -> float:
    """Standard atomic mass in yoctograms."""
    if atomic_number not in PERIODIC_TABLE:
        raise ValueError(f"No mass tabulated for atomic number {atomic_number}.")
    return PERIODIC_TABLE[atomic_number][1] * YG_PER_AMU


def dynamics_mass(atomic_number: int) -> float:
    """Mass used for time propagation, in yoctograms.

    Hydrogen is doubled so the fastest vibrations slow down, and sulfur is zero
    so the sulfur feet of a fixture act as anchors.
    """
    if atomic_number == 1:
        return 2 * element_mass(1)
    if atomic_number == 16:
        return 0.0
    return element_mass(atomic_number)


def relaxation_mass(atomic_number: int) -> float:
    """Fictitious mass for FIRE relaxation, in yoctograms (4 amu for H, 12.011 amu otherwise)."""
    return (4.0 if atomic_number == 1 else 12.011) * YG_PER_AMU


# --- atoms --------------------------------------------------------
@dataclass(frozen=True)
class Atom:
    """One atom. The position is rounded to float32 so hashing and storage see the same bits."""
    atomic_number: int
    position: tuple[float, float, float]

    def __post_init__(self):
        if not 0 <= int(self.atomic_number) <= 255:
            raise ValueError(f"atomic_number must fit in one byte, got {self.atomic_number}")
        p = torch.as_tensor(self.position, dtype=torch.float32).flatten()
        if p.numel() != 3:
            raise ValueError("Atom expects a 3D position.")
        if not torch.isfinite(p).all():
            raise ValueError(f"Atom position must be finite, got {self.position}")
        object.__setattr__(self, "atomic_number", int(self.atomic_number))
        object.__setattr__(self, "position", tuple(p.tolist()))


class Frame:
    """One snapshot of every atom.

    Parameters
    ----------
    atomic_numbers : (N,) int tensor or sequence
    positions : (N, 3) float tensor or nested sequence; stored as float32
    """
    def __init__(self, atomic_numbers: Sequence[int] | torch.Tensor, positions: Sequence | torch.Tensor):
        z = torch.as_tensor(atomic_numbers, dtype=torch.long).detach().cpu().clone().flatten()
        pos = torch.as_tensor(positions, dtype=torch.float32).detach().cpu().clone()
        if pos.ndim != 2 or pos.shape[-1] != 3:
            raise ValueError(f"positions must be (N, 3), got {tuple(pos.shape)}")
        if pos.shape[0] != z.shape[0]:
            raise ValueError(f"{z.shape[0]} atomic numbers for {pos.shape[0]} positions")
        self.atomic_numbers = z
        self.positions = pos

    @classmethod
    def from_atoms(cls, atoms: Sequence[Atom]) -> "Frame":
        if len(atoms) == 0:
            return cls(torch.zeros(0, dtype=torch.long), torch.zeros(0, 3))
        return cls([a.atomic_number for a in atoms], [a.position for a in atoms])

    def to_atoms(self) -> list[Atom]:
        return [Atom(z, tuple(p)) for z, p in zip(self.atomic_numbers.tolist(), self.positions.tolist())]

    def __len__(self) -> int:
        return self.positions.shape[0]

    def __eq__(self, other) -> bool:
        if not isinstance(other, Frame):
            return NotImplemented
        return torch.equal(self.atomic_numbers, other.atomic_numbers) and torch.equal(self.positions, other.positions)

    def __repr__(self):
        return f"Frame(atoms={len(self)})"


class Trajectory:
    """Non-empty ordered sequence of frames. First is the initial geometry, last the final one."""

    def __init__(self, frames: Sequence[Frame]):
        frames = list(frames)
        if not frames:
            raise ValueError("A trajectory needs at least one frame.")
        reference = frames[0].atomic_numbers
        for i, frame in enumerate(frames[1:], start=1):
            if not torch.equal(frame.atomic_numbers, reference):
                raise ValueError(f"Frame {i} does not match the atom count or ordering of frame 0.")
        self._frames = frames

    # --- sequence protocol --------------------------------------------------------
    def __len__(self) -> int:
        return len(self._frames)

    def __getitem__(self, index: int) -> Frame:
        return self._frames[index]

    def __iter__(self) -> Iterator[Frame]:
        return iter(self._frames)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Trajectory):
            return NotImplemented
        return len(self) == len(other) and all(a == b for a, b in zip(self, other))

    @property
    def first(self) -> Frame:
        return self._frames[0]

    @property
    def last(self) -> Frame:
        return self._frames[-1]

    @property
    def atomic_numbers(self) -> torch.Tensor:
        return self._frames[0].atomic_numbers

    def positions(self) -> torch.Tensor:
        """All positions stacked as (T, N, 3)."""
        return torch.stack([f.positions for f in self._frames])

    # --- playback --------------------------------------------------------
    def interpolate(self, time: float, frame_rate: float = 60.0) -> Frame:
        """
        Linearly interpolate between neighbouring frames for playback.

        Parameters
        ----------
        time : float
            Playback time in seconds, frames being spaced 1/frame_rate apart.
        frame_rate : float
            Frames per second of playback.

        Returns
        -------
        Frame
            Blended frame; times past the end hold the last frame.
        """
        if time < 0:
            raise ValueError(f"Playback time must be non-negative, got {time}")
        multiple = time * frame_rate
        low = math.floor(multiple)
        if low >= len(self) - 1:
            return Frame(self.atomic_numbers, self.last.positions)
        high_weight = multiple - low
        low_weight = (low + 1) - multiple
        positions = self._frames[low].positions * low_weight + self._frames[low + 1].positions * high_weight
        return Frame(self.atomic_numbers, positions)

    def __repr__(self):
        return f"Trajectory(frames={len(self)}, atoms={len(self.first)})"
