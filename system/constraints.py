"""constraints.py
Index sets the minimizer holds fixed or ties together.

* `ConstraintGroup` : atoms whose component along one axis is kept equal
* `anchor_indices`  : atoms with zero mass, excluded from all motion
"""

from __future__ import annotations

from typing import Sequence

import torch

_AXES = {"x": 0, "y": 1, "z": 2}


class ConstraintGroup:
    """Atoms that must stay equivalent along one Cartesian axis.

    Parameters
    ----------
    indices : sequence of int
        Particle indices in the group. Non-empty and unique.
    axis : int or str
        0/1/2 or "x"/"y"/"z". Defaults to y, the leg axis of a tripod fixture.
    """

    def __init__(self, indices: Sequence[int], axis: int | str = 1):
        idx = [int(i) for i in indices]
        if len(idx) == 0:
            raise ValueError("ConstraintGroup needs at least one index.")
        if len(set(idx)) != len(idx):
            raise ValueError(f"ConstraintGroup indices must be unique, got {idx}")
        if any(i < 0 for i in idx):
            raise ValueError(f"ConstraintGroup indices must be non-negative, got {idx}")
        if isinstance(axis, str):
            if axis not in _AXES:
                raise ValueError(f"Unknown axis {axis!r}, expected one of x, y, z.")
            axis = _AXES[axis]
        if axis not in (0, 1, 2):
            raise ValueError(f"axis must be 0, 1 or 2, got {axis}")
        self.indices = tuple(idx)
        self.axis = axis
        self._index_tensor = torch.tensor(idx, dtype=torch.long)

    @classmethod
    def of_element(cls, atomic_numbers: Sequence[int] | torch.Tensor, atomic_number: int, *, count: int | None = None, axis: int | str = 1) -> "ConstraintGroup":
        """Group every atom of one element, optionally insisting on how many there are."""
        z = torch.as_tensor(atomic_numbers).flatten().tolist()
        idx = [i for i, zi in enumerate(z) if zi == atomic_number]
        if count is not None and len(idx) != count:
            raise ValueError(f"Expected {count} atoms with atomic number {atomic_number}, found {len(idx)}.")
        return cls(idx, axis=axis)

    def validate(self, n_atoms: int) -> None:
        """Check the group fits a system of `n_atoms` particles."""
        if max(self.indices) >= n_atoms:
            raise IndexError(f"ConstraintGroup index {max(self.indices)} out of range for {n_atoms} atoms.")

    # --- enforcement --------------------------------------------------------
    def apply(self, vectors: torch.Tensor) -> torch.Tensor:
        """Replace each member's axis component by the group mean, in place. Returns `vectors`."""
        idx = self._index_tensor.to(vectors.device)
        component = vectors[idx, self.axis]
        vectors[idx, self.axis] = component.mean()
        return vectors

    def spread(self, vectors: torch.Tensor) -> float:
        """Largest difference of the constrained component inside the group."""
        component = vectors[self._index_tensor.to(vectors.device), self.axis]
        return (component.max() - component.min()).item()

    def __len__(self) -> int:
        return len(self.indices)

    def __repr__(self):
        return f"ConstraintGroup(indices={list(self.indices)}, axis={'xyz'[self.axis]})"


def anchor_indices(masses: torch.Tensor) -> tuple[int, ...]:
    """Indices of zero-mass particles."""
    return tuple(torch.nonzero(torch.as_tensor(masses) == 0).flatten().tolist())
